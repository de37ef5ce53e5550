import logging

import streamlit as st

from compute import AnalysisError, ConfigError, analyze_batch, analyze_rows, load_app_config, settings_from_config
from reader import decode_tabular_file
from ui import MULTI_DAY, render_batch, render_day, sidebar_settings

st.set_page_config(page_title="Call Data Analyzer", layout="wide")
st.title("Call Data Analyzer")
st.caption("Analyze work hours from call records")

app_cfg = load_app_config("config/app_config.yaml")
try:
    settings = settings_from_config(app_cfg)
except ConfigError as e:
    st.error(f"Invalid config/app_config.yaml: {e}")
    st.stop()
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

mode, sheet_index = sidebar_settings(settings)
if sheet_index is not None:
    settings.sheet_index = sheet_index


def decode(upload):
    columns = settings.call_columns
    return decode_tabular_file(upload, sheet_index=settings.sheet_index,
                               text_columns=(columns["to_number"], columns["from_number"]))


if mode == MULTI_DAY:
    uploads = st.file_uploader("Upload one Excel/CSV file per day", type=["xlsx", "csv"],
                               accept_multiple_files=True)
    if not uploads:
        st.info(f"Upload up to {settings.max_files} files to build a multi-day summary.")
        st.stop()
    try:
        with st.spinner(f"Analyzing {len(uploads)} files..."):
            result = analyze_batch([(u.name, u) for u in uploads], settings, decode=decode)
    except AnalysisError as e:
        st.error(f"Error processing files: {e}")
        st.stop()
    render_batch(result)
else:
    upload = st.file_uploader("Upload Excel/CSV file", type=["xlsx", "csv"])
    if upload is None:
        st.info("Select a file containing your call records to analyze work hours.")
        st.stop()
    try:
        with st.spinner("Analyzing your call data..."):
            day = analyze_rows(decode(upload), settings)
    except AnalysisError as e:
        st.error(f"Error processing file: {e}")
        st.stop()
    render_day(day)
