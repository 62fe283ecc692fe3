"""Scheduler-facing HTTP shim. A cron / EventBridge target POSTs the
invocation event to /invoke once per interval; the handler does the rest.
"""
import time
from fastapi import FastAPI, HTTPException
from rds_os_metrics import handler as invocation
from rds_os_metrics.collectors.duration import DurationParseError

app = FastAPI(title="rds-os-metrics")

@app.get("/")
def root():
    return {"status": "ok", "service": "rds-os-metrics"}

@app.get("/healthz")
def healthz():
    return {"status": "ok", "time": int(time.time()*1000)}

@app.post("/invoke")
def invoke(body: dict):
    try:
        return invocation.handler(body)
    except (invocation.InvalidInvocation, DurationParseError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=502, detail=f'{e.__class__.__name__}: {e}')
