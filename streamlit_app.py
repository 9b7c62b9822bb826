# streamlit_app.py
import time
import json
import requests
import pandas as pd
import streamlit as st

QUICK_ACTIONS = [
    ("Bench report", "Show me the bench report"),
    ("Certifications", "Show me certification data"),
    ("GT allocation", "Show me GT allocation"),
    ("RRF", "Show me RRF data"),
]

# ---------- Page setup ----------
st.set_page_config(page_title="OpsBot", layout="wide")

st.markdown("""
    <style>
    .main .block-container {padding-top: 2rem; padding-bottom: 3rem; max-width: 1200px;}
    .small-muted {color:#6b7280; font-size:13px;}
    .section-title {font-weight:600; font-size: 16px; margin-top: 0.5rem;}
    </style>
""", unsafe_allow_html=True)

# ---------- Sidebar ----------
with st.sidebar:
    st.header("Settings")
    api_url = st.text_input("API base URL", value="http://127.0.0.1:8000")
    show_sql = st.checkbox("Show generated SQL", value=True)
    enable_csv = st.checkbox("Enable CSV download", value=True)
    st.markdown("<div class='small-muted'>Start the API with <code>uvicorn opsbot.main:app --reload</code>.</div>", unsafe_allow_html=True)

# ---------- Session state ----------
if "history" not in st.session_state:
    st.session_state.history = []  # {question, reply, df, ms, ok, error}

def call_chat(api: str, q: str):
    t0 = time.perf_counter()
    url = api.rstrip("/") + "/chat"
    try:
        r = requests.post(url, json={"message": q.strip()}, timeout=120)
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        try:
            body = r.json()
        except ValueError:
            return False, {}, pd.DataFrame(), elapsed_ms, r.text
        if r.status_code == 400:
            return False, {}, pd.DataFrame(), elapsed_ms, body.get("error")
        data = body.get("data") or {}
        preview = data.get("preview") or []
        cols = data.get("fields") or []
        df = pd.DataFrame(preview, columns=cols or None) if preview else pd.DataFrame(columns=cols)
        return r.status_code == 200, body, df, elapsed_ms, body.get("error")
    except requests.exceptions.RequestException as e:
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        return False, {}, pd.DataFrame(), elapsed_ms, str(e)

def list_reports(api: str):
    try:
        r = requests.get(api.rstrip("/") + "/reports", timeout=10)
        r.raise_for_status()
        return r.json().get("reports", [])
    except requests.exceptions.RequestException:
        return []

def fetch_report(api: str, key: str):
    try:
        r = requests.get(api.rstrip("/") + f"/reports/{key}", timeout=60)
        body = r.json()
    except (requests.exceptions.RequestException, ValueError) as e:
        return None, str(e)
    if not body.get("success"):
        return None, body.get("error")
    return body, None

def ask(q: str):
    with st.spinner("Working…"):
        ok, reply, df, ms, err = call_chat(api_url, q)
    st.session_state.history.insert(0, {
        "question": q, "reply": reply, "df": df, "ms": ms, "ok": ok, "error": err,
    })

# ---------- Header ----------
st.title("OpsBot")
st.markdown("<div class='small-muted'>Ask a question about the operations database. The answer is generated from a live SQL query.</div>", unsafe_allow_html=True)

# ---------- Quick actions ----------
cols = st.columns(len(QUICK_ACTIONS))
for col, (label, canned) in zip(cols, QUICK_ACTIONS):
    with col:
        if st.button(label, use_container_width=True):
            ask(canned)

# ---------- Input row ----------
col_q, col_btn = st.columns([4, 1])
with col_q:
    question = st.text_input("Question", value="", placeholder="e.g., Show me all active employees")
with col_btn:
    run_clicked = st.button("Ask", type="primary", use_container_width=True)

if run_clicked and question.strip():
    ask(question)

# ---------- Conversation ----------
def render_turn(item, height=380):
    reply = item["reply"] or {}
    if reply.get("response"):
        if reply.get("type") == "success":
            st.success(reply["response"])
        else:
            st.warning(reply["response"])
    data = reply.get("data") or {}
    if show_sql and data.get("sqlQuery"):
        st.markdown("<div class='section-title'>Generated SQL</div>", unsafe_allow_html=True)
        st.code(data["sqlQuery"], language="sql")
    if not item["df"].empty:
        st.markdown(f"<div class='small-muted'>Showing {len(item['df'])} of {data.get('resultCount', 0)} rows</div>", unsafe_allow_html=True)
        st.dataframe(item["df"], use_container_width=True, height=height)
        if enable_csv:
            csv = item["df"].to_csv(index=False).encode("utf-8")
            st.download_button("Download CSV", data=csv, file_name="result.csv", mime="text/csv",
                               key=f"csv-{id(item)}")
    if item["error"]:
        st.markdown("<div class='section-title'>Details</div>", unsafe_allow_html=True)
        if isinstance(item["error"], (dict, list)):
            st.code(json.dumps(item["error"], indent=2))
        else:
            st.code(str(item["error"]))

if st.session_state.history:
    latest = st.session_state.history[0]
    st.subheader(latest["question"])
    st.markdown(f"<div class='small-muted'>Answered in {latest['ms']} ms</div>", unsafe_allow_html=True)
    render_turn(latest)

    if len(st.session_state.history) > 1:
        st.subheader("History")
        for i, item in enumerate(st.session_state.history[1:], start=2):
            with st.expander(f"{i}. {item['question']}  •  {item['ms']} ms"):
                render_turn(item, height=240)

# ---------- Reports ----------
with st.sidebar:
    st.header("Reports")
    reports = list_reports(api_url)
    if not reports:
        st.markdown("<div class='small-muted'>No reports available.</div>", unsafe_allow_html=True)
    else:
        titles = {r["title"]: r["key"] for r in reports}
        choice = st.selectbox("Report", list(titles))
        load_clicked = st.button("Load report", use_container_width=True)

if reports and load_clicked:
    with st.spinner("Downloading report…"):
        report, err = fetch_report(api_url, titles[choice])
    st.subheader(choice)
    if err:
        st.error(err)
    else:
        st.markdown(f"<div class='small-muted'>Sheet {report['worksheet']} • {report['totalRows']} rows • fetched {report['lastFetched']}</div>", unsafe_allow_html=True)
        df = pd.DataFrame(report["data"]).drop(columns=["_rowIndex"], errors="ignore")
        st.dataframe(df, use_container_width=True, height=480)
