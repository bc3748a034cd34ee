import os, requests

API = os.environ.get("TRACELAB_API", "http://localhost:8000")

def _json_or_text(resp):
    ct = resp.headers.get("content-type", "")
    if "application/json" in ct.lower():
        try:
            return resp.json()
        except ValueError:
            pass
    # Fallback: return a structured error with any text body
    return {
        "status": "error",
        "status_code": resp.status_code,
        "text": resp.text[:2000] if hasattr(resp, "text") else "",
    }

def api_versions():
    try:
        r = requests.get(f"{API}/versions", timeout=5)
        return _json_or_text(r)
    except requests.RequestException as e:
        return {"status":"error","message":f"versions request failed: {e}"}

def api_tracers():
    try:
        r = requests.get(f"{API}/tracers", timeout=5)
        return _json_or_text(r)
    except requests.RequestException as e:
        return {"status":"error","message":f"tracers request failed: {e}"}

def api_trace(tracer, events, config=None, save=True):
    payload = {"tracer": tracer, "events": list(events), "config": config or {}, "save": save}
    try:
        r = requests.post(f"{API}/trace", json=payload, timeout=600)
        return _json_or_text(r)
    except requests.RequestException as e:
        return {"status":"error","message":f"trace failed: {e}"}

def api_results():
    try:
        r = requests.get(f"{API}/results", timeout=10)
        return _json_or_text(r)
    except requests.RequestException as e:
        return {"status":"error","message":f"results failed: {e}"}
