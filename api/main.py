import os, json, uuid, time, logging
from pathlib import Path
from typing import List, Dict, Any
import psutil, pydantic, pandas as pd
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tracelab.errors import ConfigurationError, DataIntegrityFault, SerializationFault
from tracelab.replay import replay
from tracelab.serializer import decode, unwrap
from tracelab.variants import DEFAULT_DIRECTORY, new_tracer

logging.basicConfig(level=os.environ.get("TRACELAB_LOG_LEVEL", "INFO").upper(),
                    format="%(asctime)s %(levelname)s %(name)s: %(message)s")
LOGGER = logging.getLogger("tracelab.api")

RESULTS_DIR = Path(os.environ.get("TRACELAB_RESULTS", "results"))

# storage placement (store, csv_path) stays with the server
REQUEST_CONFIG_KEYS = {"resolution", "dimensions", "cost_mode", "cycles_mode", "cpu_mhz", "io_source"}

app = FastAPI()
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])

class TraceRequest(BaseModel):
    tracer: str = "cycleTracer"
    config: Dict[str, Any] = Field(default_factory=dict)
    events: List[Dict[str, Any]] = Field(default_factory=list)
    save: bool = True

def _error(status: int, msg: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"ok": False, "error": msg})

@app.get("/")
def root():
    return {"message": "tracelab-api ok"}

@app.get("/versions")
def versions():
    return {"api": "1.0", "psutil": psutil.__version__, "pydantic": pydantic.VERSION, "pandas": pd.__version__}

@app.get("/tracers")
def tracers():
    return {"ok": True, "tracers": DEFAULT_DIRECTORY.names()}

@app.post("/trace")
def trace(req: TraceRequest):
    if req.tracer not in DEFAULT_DIRECTORY:
        return _error(400, f"unknown tracer: {req.tracer}")
    rejected = sorted(set(req.config) - REQUEST_CONFIG_KEYS)
    if rejected:
        return _error(400, f"config keys not accepted over the api: {rejected}")
    try:
        tracer = new_tracer(req.tracer, json.dumps(req.config) if req.config else None)
        t0 = time.perf_counter()
        text = unwrap(replay(tracer, req.events))
        elapsed = time.perf_counter() - t0
    except (ConfigurationError, ValueError, KeyError) as e:
        return _error(400, str(e))
    except (DataIntegrityFault, SerializationFault) as e:
        LOGGER.error("trace %s failed: %s", req.tracer, e)
        return _error(500, str(e))

    out = {"ok": True, "tracer": req.tracer, "result": text, "rows": len(decode(text)), "latency_s": elapsed}
    if req.save:
        RESULTS_DIR.mkdir(parents=True, exist_ok=True)
        path = RESULTS_DIR / f"{req.tracer}_{uuid.uuid4().hex[:8]}.csv"
        path.write_text(text, encoding="utf-8")
        out["path"] = str(path)
        LOGGER.info("trace %s: %d rows -> %s", req.tracer, out["rows"], path)
    return out

@app.get("/results")
def results(limit: int = 50):
    if not RESULTS_DIR.exists():
        return {"ok": True, "files": []}
    files = sorted(RESULTS_DIR.glob("*.csv"), key=lambda p: p.stat().st_mtime, reverse=True)
    return {"ok": True, "files": [p.name for p in files[:limit]]}
