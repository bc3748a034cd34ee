# app.py
import io, json, time
from pathlib import Path
import pandas as pd, numpy as np
import plotly.express as px
import streamlit as st

from _client import API, api_versions, api_tracers, api_trace, api_results

# ────────────────────────────── PAGE CONFIG ──────────────────────────────
st.set_page_config(page_title="Tracelab", layout="wide", initial_sidebar_state="expanded")

# ────────────────────────────── CONSTANTS ──────────────────────────────
RESULTS_DIR = Path("results")
METRICS = ["cycles", "time"]

# ────────────────────────────── UTILITIES ──────────────────────────────
@st.cache_data(show_spinner=False)
def load_result_bytes(name, blob):
    if name.lower().endswith(".csv"):
        return pd.read_csv(io.BytesIO(blob))
    raise ValueError("Unsupported file type. Use a result CSV.")

def parse_event_log(blob):
    events = []
    for line in blob.decode("utf-8").splitlines():
        line = line.strip()
        if line:
            events.append(json.loads(line))
    return events

def pick_metric(df):
    for m in METRICS:
        if m in df.columns:
            return m
    nums = df.select_dtypes(include=[np.number]).columns.tolist()
    return nums[0] if nums else None

def get_df():
    return st.session_state.get("trace_df")

# ────────────────────────────── HEADER ──────────────────────────────
hdr_l, hdr_r = st.columns([0.75, 0.25])
with hdr_l:
    st.title("Tracelab")
    st.caption("Instruction-level resource traces against the cost schedule")
with hdr_r:
    v = api_versions()
    if "api" in v:
        st.success(f"API {v['api']} @ {API}")
    else:
        st.warning(f"API unreachable @ {API}")

nav = st.sidebar.radio("Navigate", ["Run trace", "Load result", "Opcodes", "Series"], key="nav")

# ────────────────────────────── RUN TRACE ──────────────────────────────
if nav == "Run trace":
    st.subheader("Replay an execution log")
    tr = api_tracers()
    names = tr.get("tracers") or ["cycleTracer", "timingTracer"]
    tracer = st.selectbox("Tracer", names, index=0, key="run_tracer")
    resolution = st.number_input("Resolution", min_value=1, max_value=100000, value=1, step=1, key="run_res")
    up = st.file_uploader("Event log (JSONL)", type=["jsonl", "json"], key="run_log")
    if st.button("Run", disabled=up is None, key="run_btn"):
        try:
            events = parse_event_log(up.getvalue())
        except ValueError as e:
            st.error(f"Bad event log: {e}")
            events = None
        if events is not None:
            t0 = time.perf_counter()
            res = api_trace(tracer, events, config={"resolution": int(resolution)})
            t1 = time.perf_counter()
            if not res.get("ok"):
                st.error(f"Trace failed: {res.get('error') or res.get('message') or res}")
            else:
                st.session_state["trace_df"] = pd.read_csv(io.StringIO(res["result"]))
                st.success(f"{res['rows']} rows in {t1 - t0:.3f}s")

# ────────────────────────────── LOAD RESULT ──────────────────────────────
if nav == "Load result":
    st.subheader("Load a result table")
    up = st.file_uploader("Result CSV", type=["csv"], key="res_up")
    if up is not None:
        st.session_state["trace_df"] = load_result_bytes(up.name, up.getvalue())
    saved = api_results().get("files") or []
    if saved:
        st.markdown("Saved on the API host")
        st.dataframe(pd.DataFrame({"file": saved}), use_container_width=True)
    df = get_df()
    if df is not None:
        st.dataframe(df.head(500), use_container_width=True)

# ────────────────────────────── OPCODES ──────────────────────────────
if nav == "Opcodes":
    st.subheader("Per-opcode distributions")
    df = get_df()
    if df is None or "opcode" not in df.columns:
        st.info("Load or run an instruction trace first")
    else:
        metric = pick_metric(df)
        k1, k2, k3 = st.columns(3)
        k1.metric("Rows", f"{len(df):,}")
        k2.metric("Opcodes", f"{df['opcode'].nunique():,}")
        k3.metric("Total cost", f"{int(df['cost'].sum()):,}")
        top = df.groupby("opcode")[metric].median().sort_values(ascending=False)
        n = st.slider("Opcodes shown", 5, 60, 20, key="op_n")
        sub = df[df["opcode"].isin(top.head(n).index)]
        st.plotly_chart(px.box(sub, x="opcode", y=metric, title=f"{metric} by opcode", height=480),
                        use_container_width=True)
        agg = df.groupby("opcode", as_index=False).agg(metric=(metric, "median"), cost=("cost", "median"))
        st.plotly_chart(px.scatter(agg, x="cost", y="metric", text="opcode",
                                   title=f"Median {metric} vs median cost", height=480),
                        use_container_width=True)

# ────────────────────────────── SERIES ──────────────────────────────
if nav == "Series":
    st.subheader("Sampled series")
    df = get_df()
    if df is None:
        st.info("Load or run a trace first")
    else:
        cols = [c for c in df.select_dtypes(include=[np.number]).columns if c != "cost"]
        pick = st.multiselect("Columns", cols, default=cols[:3], key="ser_cols")
        if pick:
            long = df[pick].reset_index().melt(id_vars="index", var_name="series", value_name="value")
            st.plotly_chart(px.line(long, x="index", y="value", color="series", height=480),
                            use_container_width=True)
