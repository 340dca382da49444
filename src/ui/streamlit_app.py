"""
Streamlit UI -- CRM Assistant chat.

Features:
  - Persistent chat history (session state)
  - Sidebar with the live metric/table catalog
  - Caller identity inputs, forwarded to the API as X-User-* headers
  - List results as a table with download button
  - Typed error display (malformed request, forbidden metric, database down)
  - Dry-run panel showing the extracted intent
"""
import streamlit as st
import httpx
import pandas as pd


API_BASE = "http://localhost:8000"
_TIMEOUT = 30

st.set_page_config(
    page_title="CRM Assistant",
    page_icon="speech_balloon",
    layout="wide",
    initial_sidebar_state="expanded",
)


if "messages" not in st.session_state:
    st.session_state.messages = []

if "catalog" not in st.session_state:
    st.session_state.catalog = None



def _load_catalog():
    """Fetch /catalog from the API; cache in session_state."""
    try:
        st.session_state.catalog = httpx.get(f"{API_BASE}/catalog", timeout=5).json()
    except httpx.HTTPError:
        st.session_state.catalog = None


def _identity_headers() -> dict[str, str]:
    headers = {}
    if st.session_state.get("user_id"):
        headers["X-User-Id"] = st.session_state.user_id
        headers["X-User-Role"] = st.session_state.get("user_role") or "sales"
    if st.session_state.get("ownership_id"):
        headers["X-Ownership-Id"] = st.session_state.ownership_id
    return headers


def _explain(question: str, mode: str) -> dict | None:
    try:
        resp = httpx.post(f"{API_BASE}/ask/explain", json={"question": question, "mode": mode}, timeout=_TIMEOUT)
        return resp.json() if resp.status_code == 200 else None
    except httpx.HTTPError:
        return None


with st.sidebar:
    st.title("Catalog")

    if st.button("Refresh catalog", use_container_width=True):
        _load_catalog()

    if st.session_state.catalog is None:
        _load_catalog()

    catalog = st.session_state.catalog

    if catalog:
        st.subheader("Metrics")
        for m in catalog.get("metrics", []):
            st.markdown(f"- **{m['name']}** `{m['table']}`")
            st.caption(f"  {m.get('description', '')}")

        st.divider()

        st.subheader("Tables")
        for t in catalog.get("tables", []):
            with st.expander(t["name"], expanded=False):
                st.caption(", ".join(t.get("columns", [])))

        st.divider()

        st.subheader("Time ranges")
        st.caption(", ".join(catalog.get("time_ranges", [])))
        st.write(f"List limit: **{catalog.get('list_row_limit', 100)}** rows")
    else:
        st.info("API not reachable -- start the FastAPI server first.\n\n```\nuvicorn src.api.main:app --reload\n```")

    st.divider()

    # ── Caller identity ─────────────────────────────────
    st.subheader("Signed in as")
    st.text_input("User id", key="user_id", placeholder="e.g. u1")
    st.selectbox("Role", ["sales", "manager", "admin"], key="user_role")
    st.text_input(
        "Sales person id",
        key="ownership_id",
        placeholder="e.g. 1",
        help="Used for questions about *my* leads, tasks or meetings.",
    )

    st.divider()

    st.selectbox("Model", ["mock", "openai", "anthropic", "ollama"], key="mode")
    st.checkbox("Show extracted intent", key="show_intent")

    st.divider()
    st.caption("CRM Assistant v0.1")



st.title("CRM Assistant")
st.markdown("Ask about your leads, tasks, meetings and bookings. Answers come straight from CRM data.")


with st.expander("Example questions", expanded=False):
    examples = [
        "How many won leads today?",
        "How many of my tasks are overdue?",
        "What is the email of LD-101?",
        "Show all pending tasks",
        "What is the lead conversion probability?",
        "How many meetings are scheduled this week?",
    ]
    cols = st.columns(2)
    for i, ex in enumerate(examples):
        if cols[i % 2].button(ex, key=f"ex_{i}", use_container_width=True):
            st.session_state.prefill = ex


_ERROR_TITLES = {
    "malformed_request": "Please type a question.",
    "invalid_intent": "That question doesn't map to a supported CRM query.",
    "forbidden_metric": "Revenue and money questions are not available.",
    "extraction_failed": "The assistant could not understand the question.",
    "query_execution_failed": "The CRM query failed.",
    "answer_generation_failed": "The answer could not be written.",
}


def _render_error(body: dict):
    code = body.get("error", "")
    st.error(f"**{_ERROR_TITLES.get(code, 'Something went wrong.')}**  \n{body.get('message', '')}")
    if body.get("category"):
        st.caption(f"category: `{body['category']}`")
    if body.get("details"):
        with st.expander("Details", expanded=False):
            st.json(body["details"])


def _render_response(data: dict):
    """Render an assistant response inside a chat message."""
    if "error" in data:
        _render_error(data)
        return

    st.markdown(data.get("answer", ""))

    rows = data.get("data") or []
    if rows:
        df = pd.DataFrame(rows)
        with st.expander(f"📋 {data.get('count', len(rows))} records", expanded=False):
            st.dataframe(df, use_container_width=True)
            st.download_button(
                "Download CSV",
                df.to_csv(index=False),
                file_name="crm_results.csv",
                mime="text/csv",
                key=f"dl_{id(data)}",
            )

    record = data.get("record")
    if record:
        with st.expander("Record", expanded=False):
            st.json(record)

    intent = data.get("_intent")
    if intent:
        with st.expander("Intent", expanded=False):
            st.json(intent)

    st.caption(f"source: {data.get('source', '')}")


for msg in st.session_state.messages:
    with st.chat_message(msg["role"]):
        if msg["role"] == "user":
            st.markdown(msg["content"])
        else:
            _render_response(msg["data"])



prefill = st.session_state.pop("prefill", None)
question = st.chat_input("Ask a CRM question...") or prefill

if question:
    st.session_state.messages.append({"role": "user", "content": question})
    with st.chat_message("user"):
        st.markdown(question)

    with st.chat_message("assistant"):
        mode = st.session_state.get("mode", "mock")
        with st.spinner("Looking it up..."):
            try:
                resp = httpx.post(
                    f"{API_BASE}/ask",
                    json={"question": question, "mode": mode},
                    headers=_identity_headers(),
                    timeout=_TIMEOUT,
                )
                data = resp.json()
            except httpx.ConnectError:
                st.error("Cannot reach the API. Start it with:\n```\nuvicorn src.api.main:app --reload\n```")
                st.stop()
            except (httpx.HTTPError, ValueError) as exc:
                st.error(f"Unexpected error: {exc}")
                st.stop()

        if st.session_state.get("show_intent"):
            explained = _explain(question, mode)
            if explained:
                data["_intent"] = explained

        _render_response(data)
        st.session_state.messages.append({"role": "assistant", "data": data})
