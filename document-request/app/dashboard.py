"""Document Request -- Streamlit dashboard.

Client-facing request list: the client confirms company and period, marks
which sections apply, attaches one file per requested document and submits.
The form is launched from a share link whose query string prefills the
client, period and section applicability; ``?sheet=<gid>`` switches to a
request list kept in Google Sheets.

Part of the office tool suite.
"""

from __future__ import annotations

import asyncio

import streamlit as st

from app.errors import FileRejected, FormValidationError, SchemaUnavailable, UploadFailed
from app.form_model import ACCEPTED_MIME_TYPES, MAX_FILE_SIZE, AttachedFile, FormModel
from app.options import load_form_options
from app.sections import FormSchema, default_schema, fetch_schema
from app.submission import SubmissionAssembler
from app.url_state import URLStateReconciler

# ── Page config ──────────────────────────────────────────────────────────────

st.set_page_config(
    page_title="Request List",
    layout="centered",
    initial_sidebar_state="collapsed",
)

_UPLOAD_TYPES = ["png", "jpg", "jpeg", "gif", "pdf"]

# ── Session state ────────────────────────────────────────────────────────────

_DEFAULTS: dict = {
    "dr_model": None,
    "dr_params": None,
    "dr_source": None,
    "dr_rev": 0,
    "dr_assembler": None,
    "dr_sending": False,
    "dr_nonce": {},
    "dr_submitted": False,
    "dr_error": "",
}
for _k, _v in _DEFAULTS.items():
    if _k not in st.session_state:
        st.session_state[_k] = _v


@st.cache_data(ttl=300, show_spinner="Loading request list...")
def _remote_schema(sheet_id: str) -> FormSchema:
    return fetch_schema(sheet_id)


options = load_form_options()
params = st.query_params.to_dict()
sheet_id = params.pop("sheet", None)

try:
    schema = _remote_schema(sheet_id) if sheet_id else default_schema()
except SchemaUnavailable as e:
    st.error(f"This request list could not be loaded. {e.reason}")
    st.stop()

reconciler = URLStateReconciler(schema, options)

if st.session_state.dr_model is None or st.session_state.dr_source != schema.source:
    st.session_state.dr_model = reconciler.initialize(params)
    st.session_state.dr_params = params
    st.session_state.dr_source = schema.source
    st.session_state.dr_assembler = SubmissionAssembler(options=options)
elif st.session_state.dr_params != params:
    reconciler.reconcile(st.session_state.dr_model, params)
    st.session_state.dr_params = params
    st.session_state.dr_rev += 1

model: FormModel = st.session_state.dr_model
assembler: SubmissionAssembler = st.session_state.dr_assembler
rev = st.session_state.dr_rev
busy = st.session_state.dr_sending or assembler.is_submitting


# ── Callbacks ────────────────────────────────────────────────────────────────


def _on_client(key: str) -> None:
    st.session_state.dr_model.set_client(st.session_state[key])


def _on_period(key: str) -> None:
    st.session_state.dr_model.set_period(st.session_state[key].strip())


def _on_applicable(section_key: str, key: str) -> None:
    st.session_state.dr_model.set_applicability(section_key, bool(st.session_state[key]))


def _on_remark(section_key: str, key: str) -> None:
    st.session_state.dr_model.set_remark(section_key, st.session_state[key])


def _rotate_uploader(section_key: str, field_key: str) -> None:
    slot = f"{section_key}/{field_key}"
    st.session_state.dr_nonce[slot] = st.session_state.dr_nonce.get(slot, 0) + 1


def _uploader_key(section_key: str, field_key: str) -> str:
    nonce = st.session_state.dr_nonce.get(f"{section_key}/{field_key}", 0)
    return f"upload_{section_key}_{field_key}_{rev}_{nonce}"


def _on_upload(section_key: str, field_key: str, key: str) -> None:
    uploaded = st.session_state.get(key)
    attached = None
    if uploaded is not None:
        attached = AttachedFile(
            name=uploaded.name,
            content=uploaded.getvalue(),
            mime_type=uploaded.type or "",
        )
    try:
        changed = asyncio.run(
            st.session_state.dr_model.set_file(section_key, field_key, attached)
        )
    except (FileRejected, UploadFailed) as e:
        _rotate_uploader(section_key, field_key)
        st.toast(e.message, icon="⚠️")
        return
    if not changed:
        return
    if attached is None:
        st.toast("File has been removed")
    else:
        st.toast(f"Successfully uploaded {attached.name}")


def _on_remove(section_key: str, field_key: str) -> None:
    st.session_state.dr_model.remove_file(section_key, field_key)
    _rotate_uploader(section_key, field_key)
    st.toast("File has been removed")


def _on_submit() -> None:
    if st.session_state.dr_sending:
        return
    st.session_state.dr_sending = True
    st.session_state.dr_error = ""
    st.session_state.dr_submitted = False


def _on_start_over() -> None:
    st.session_state.dr_model.reset()
    st.session_state.dr_nonce = {}
    st.session_state.dr_rev += 1
    st.session_state.dr_error = ""
    st.session_state.dr_submitted = False


# ── Sidebar: share link builder ─────────────────────────────────────────────

with st.sidebar:
    st.markdown("### Share link")
    st.caption("Build a prefilled link to send to a client.")
    base_url = st.text_input("Form URL", value="http://localhost:8501")
    link_client = st.text_input("Client", key="share_client")
    link_period = st.text_input("Period", value=reconciler.default_period(), key="share_period")
    link_skip = st.multiselect(
        "Not applicable",
        options=schema.section_keys(),
        format_func=lambda k: schema.section(k).title if schema.section(k) else k,
        disabled=not options.applicability_enabled,
    )
    if st.button("Create link", use_container_width=True):
        try:
            url = reconciler.build_share_link(
                base_url,
                client=link_client.strip(),
                period=link_period.strip(),
                inapplicable=link_skip,
                sheet_id=sheet_id,
            )
        except ValueError as e:
            st.error(str(e))
        else:
            st.code(url, language=None)


# ── Header and progress ─────────────────────────────────────────────────────

st.title("Request List")

progress = model.progress()
st.progress(
    progress["pct"] / 100,
    text=f"Completed sections: {progress['completed']} / {progress['applicable']}",
)

errors = {e.field: e.message for e in model.validate()}
if errors:
    st.caption(":red[Please fill in all required fields: Client and Period]")

_client_key = f"client_{rev}"
st.text_input(
    "Client Name",
    value=model.client,
    placeholder="Enter client name",
    key=_client_key,
    on_change=_on_client,
    args=(_client_key,),
    disabled=busy,
)
if "client" in errors:
    st.caption(f":red[{errors['client']}]")

_period_key = f"period_{rev}"
st.text_input(
    "Period",
    value=model.period,
    placeholder=f"Enter period (e.g., {reconciler.default_period()})",
    key=_period_key,
    on_change=_on_period,
    args=(_period_key,),
    disabled=busy,
)
if "period" in errors:
    st.caption(f":red[{errors['period']}]")

# ── Sections ─────────────────────────────────────────────────────────────────

for section in schema:
    state = model.sections[section.key]
    done = model.is_section_complete(section.key)
    label = section.title
    if not state.is_applicable:
        label = f"~~{label}~~ (Not Applicable)"
    elif done:
        label = f"{label} ✅"

    with st.expander(label, expanded=False):
        if section.description:
            st.caption(section.description)

        if options.applicability_enabled:
            _app_key = f"applicable_{section.key}_{rev}"
            st.toggle(
                "Would this section be applicable to you?",
                value=state.is_applicable,
                key=_app_key,
                on_change=_on_applicable,
                args=(section.key, _app_key),
                disabled=busy,
            )

        if options.remarks_enabled:
            _remark_key = f"remark_{section.key}_{rev}"
            st.text_area(
                "Remarks",
                value=state.remark,
                placeholder="Add any notes or remarks about this section",
                key=_remark_key,
                on_change=_on_remark,
                args=(section.key, _remark_key),
                disabled=busy,
            )

        if not state.is_applicable:
            continue

        for f in section.fields:
            st.markdown(f"**{f.label}**")
            if f.description:
                st.caption(f.description)
            current = model.get_file(section.key, f.key)
            if current is not None:
                col_name, col_rm = st.columns([5, 1])
                with col_name:
                    st.caption(
                        f"Current file: {current.name} "
                        f"({current.size_bytes / 1024 / 1024:.2f} MB)"
                    )
                with col_rm:
                    st.button(
                        "Remove",
                        key=f"rm_{section.key}_{f.key}_{rev}",
                        on_click=_on_remove,
                        args=(section.key, f.key),
                        disabled=busy or model.is_uploading(section.key, f.key),
                    )
            _up_key = _uploader_key(section.key, f.key)
            st.file_uploader(
                f"Drag images or PDF here or click to select file "
                f"(max {MAX_FILE_SIZE // (1024 * 1024)}MB)",
                type=_UPLOAD_TYPES,
                key=_up_key,
                on_change=_on_upload,
                args=(section.key, f.key, _up_key),
                disabled=busy,
                label_visibility="collapsed",
                help=", ".join(ACCEPTED_MIME_TYPES),
            )

# ── Submit ───────────────────────────────────────────────────────────────────

st.divider()
ready = model.is_ready_to_submit()
if not ready:
    st.caption(
        "Please fill in all required fields and complete all applicable "
        "sections before submitting"
    )

col_submit, col_reset = st.columns([3, 1])
with col_submit:
    st.button(
        "Submit",
        key="dr_submit",
        type="primary",
        on_click=_on_submit,
        disabled=not ready or busy,
        use_container_width=True,
    )
with col_reset:
    st.button(
        "Start over",
        key="dr_start_over",
        on_click=_on_start_over,
        disabled=busy,
        use_container_width=True,
    )

if st.session_state.dr_error:
    st.error(st.session_state.dr_error)

if st.session_state.dr_submitted:
    st.success(
        "Thank you for submitting your documents. They have been successfully "
        "uploaded and sent via email. We will review your submission and get "
        "back to you if we need any additional information."
    )

# The send runs after every widget above has rendered disabled.
if st.session_state.dr_sending:
    with st.spinner("Sending documents..."):
        try:
            result = assembler.submit_model(model)
        except FormValidationError as e:
            st.session_state.dr_error = e.message
        else:
            st.session_state.dr_submitted = result.success
            st.session_state.dr_error = "" if result.success else result.error.message
        finally:
            st.session_state.dr_sending = False
    st.rerun()
