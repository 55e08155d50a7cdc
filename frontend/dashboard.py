"""
MainsGrader - Candidate Dashboard
Streamlit web interface: upload answer files, assemble them locally and send
the extracted content to the evaluation API.
"""

import html
import json
import os
import sys
from pathlib import Path

import requests
import streamlit as st

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backend.content_assembler import ContentAssembler, UploadedFile, MAX_FILES

# ─────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────

API_BASE = os.getenv("API_BASE", "http://localhost:8000")

st.set_page_config(
    page_title="MainsGrader",
    page_icon="📝",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    .score-card {
        background: linear-gradient(135deg, #1a1a2e, #16213e);
        border-radius: 16px;
        padding: 24px;
        text-align: center;
        color: white;
        margin-bottom: 16px;
    }
    .score-value { font-size: 52px; font-weight: 800; }
    .score-label { font-size: 13px; opacity: 0.65; text-transform: uppercase; letter-spacing: 1px; }

    .feedback-box {
        background: #e8f5e9;
        border-left: 4px solid #4CAF50;
        padding: 14px 16px;
        border-radius: 8px;
        margin: 6px 0;
        font-size: 14px;
    }
    .missing-box {
        background: #fff3e0;
        border-left: 4px solid #FF9800;
        padding: 14px 16px;
        border-radius: 8px;
        margin: 6px 0;
        font-size: 14px;
    }
    .pill-done { background:#dcfce7; color:#166534; border-radius:20px; padding:3px 10px; font-size:12px; font-weight:600; }
    .pill-err  { background:#fee2e2; color:#991b1b; border-radius:20px; padding:3px 10px; font-size:12px; font-weight:600; }
</style>
""", unsafe_allow_html=True)


# ─────────────────────────────────────────────────────────
# Helper Functions
# ─────────────────────────────────────────────────────────

def api_health_check():
    try:
        r = requests.get(f"{API_BASE}/health", timeout=3)
        return r.status_code == 200
    except requests.RequestException:
        return False


def evaluate_payload(payload: dict) -> dict:
    r = requests.post(f"{API_BASE}/evaluate", json=payload, timeout=180)
    r.raise_for_status()
    return r.json()


def error_detail(response) -> str:
    try:
        return response.json().get("detail") or response.text
    except ValueError:
        return response.text or "Server error"


def render_score_card(total, max_marks, raw):
    pct = (total / max_marks) * 100 if max_marks > 0 else 0
    color = "#4CAF50" if pct >= 70 else "#FF9800" if pct >= 50 else "#f44336"
    st.markdown(f"""
    <div class="score-card">
        <div class="score-label">Final Score</div>
        <div class="score-value" style="color:{color};">{total}</div>
        <div style="color:#aaa; font-size:18px;">out of {max_marks:g}</div>
        <div style="margin-top:12px; color:#90caf9;">Raw: {raw:g}/100 (scaled)</div>
    </div>
    """, unsafe_allow_html=True)
    st.progress(min(pct / 100, 1.0))


def render_list(title: str, items: list, css_class: str, icon: str):
    st.markdown(f"#### {title}")
    if not items:
        st.caption("—")
        return
    for item in items:
        st.markdown(f'<div class="{css_class}">{icon} {html.escape(str(item))}</div>', unsafe_allow_html=True)


# ─────────────────────────────────────────────────────────
# Sidebar
# ─────────────────────────────────────────────────────────

with st.sidebar:
    st.title("📝 MainsGrader")
    st.caption("Strict UPSC/OPSC rubric evaluation")
    st.divider()
    if api_health_check():
        st.success("✅ API Server is online")
    else:
        st.error("❌ API Server is offline. Start: `uvicorn backend.api:app --reload`")
    st.divider()
    st.markdown(
        "**Rubric (0–100)**\n\n"
        "- Content relevance & accuracy: 40\n"
        "- Analysis depth & linkages: 20\n"
        "- Structure (intro/body/conclusion): 15\n"
        "- Examples, cases, data, diagrams: 10\n"
        "- Clarity, language & presentation: 10\n"
        "- Value add: 5"
    )


# ─────────────────────────────────────────────────────────
# Page: Evaluate Answer
# ─────────────────────────────────────────────────────────

st.title("📤 Evaluate a Written Answer")

question = st.text_area("Question (paste the exact question)", height=120)

c1, c2, c3 = st.columns(3)
with c1:
    max_marks = st.number_input("Max Marks", min_value=0.0, value=15.0, step=1.0)
with c2:
    exam_type = st.selectbox("Exam Type", ["GS", "Essay", "Optional", "Ethics"])
with c3:
    time_limit = st.number_input("Time Limit (mins, 0 = none)", min_value=0, value=0, step=1)

uploads = st.file_uploader(
    f"Answer files (PDF, DOCX, PPTX, PNG, JPG) — first {MAX_FILES} are evaluated",
    type=["pdf", "docx", "pptx", "png", "jpg", "jpeg"],
    accept_multiple_files=True,
)

if st.button("🚀 Evaluate", type="primary", use_container_width=True):
    if not question.strip():
        st.error("Please paste the exact question.")
        st.stop()
    if not max_marks or max_marks <= 0:
        st.error("Enter valid Max Marks.")
        st.stop()

    with st.spinner("🔍 Extracting text and page images..."):
        files = [UploadedFile(u.name, u.getvalue(), u.type) for u in uploads or []]
        assembled = ContentAssembler().assemble(files)

    with st.expander("📄 Files", expanded=bool(assembled.warnings)):
        for f in assembled.files:
            pill = "pill-err" if f.status in ("failed", "rejected", "skipped") else "pill-done"
            st.markdown(
                f'<span class="{pill}">{f.status}</span> **{html.escape(f.name)}** — {html.escape(f.message)}',
                unsafe_allow_html=True,
            )
    for warning in assembled.warnings:
        st.warning(warning)

    payload = {
        "question": question.strip(),
        "maxMarks": max_marks,
        "examType": exam_type,
        "timeLimit": time_limit or None,
        **assembled.to_payload(),
    }

    with st.spinner("🤖 Running AI evaluation..."):
        try:
            result = evaluate_payload(payload)
        except requests.HTTPError as e:
            st.error(f"Evaluation API error: {error_detail(e.response)}")
            st.stop()
        except requests.RequestException as e:
            st.error(f"Evaluation failed: {e}")
            st.stop()

    st.success("✅ Evaluation complete!")
    st.divider()

    left, right = st.columns([1, 2])
    with left:
        render_score_card(result["totalScaled"], result["maxMarks"], result["rawOutOf100"])
    with right:
        st.markdown("#### Breakdown (0–100)")
        for key, value in result.get("rubric", {}).items():
            st.metric(key.replace("_", " ").capitalize(), f"{value:g}")

    fb_col, weak_col = st.columns(2)
    with fb_col:
        render_list("💪 Strengths", result.get("strengths"), "feedback-box", "✅")
    with weak_col:
        render_list("⚠️ Weaknesses", result.get("weaknesses"), "missing-box", "⚠️")

    render_list("💡 Suggestions", result.get("suggestions"), "feedback-box", "💡")
    if result.get("inline_comments"):
        render_list("📝 Inline / Section Comments", result["inline_comments"], "missing-box", "📝")

    st.download_button(
        "⬇️ Download Result (JSON)",
        data=json.dumps(result, indent=2),
        file_name="evaluation_result.json",
        mime="application/json",
        use_container_width=True,
    )
