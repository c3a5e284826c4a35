# main.py

"""Streamlit web UI for the pseudonymized text-improvement workflow.

Shows the four stages side by side: input text, pseudonymized text, the
language model's rewrite, and the restored final text.
"""

import streamlit as st
import logging

from pseudonymization.core.exceptions import InputValidationError, PseudonymizationError
from pseudonymization.logging_config import configure_logging
from pseudonymization.service.config import settings
from pseudonymization.service.pipeline import get_workflow_service

configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


def main():
    """Run the Streamlit application UI.

    This function configures the Streamlit page, accepts input text and an
    optional prompt, runs the pseudonymize -> improve -> restore workflow,
    and fills the remaining panes with each stage's output.
    """
    st.set_page_config(layout="wide", page_title="CIB Pop Write", page_icon="✍️")

    service = get_workflow_service()

    st.title("CIB Pop Write")
    st.markdown(
        "Texte verbessern, ohne personenbezogene Daten an das Sprachmodell zu senden."
    )
    st.markdown("---")

    prompt = st.text_input("Prompt", value=service.default_prompt())

    col1, col2 = st.columns(2)

    with col1:
        st.subheader("Eingabetext")
        text_input = st.text_area(
            "Input",
            height=250,
            max_chars=settings.improve_max_chars,
            placeholder="Text hier einfügen...",
        )
        run = st.button("Verarbeiten", type="primary")

    result = None
    if run:
        try:
            with st.spinner("Text wird verarbeitet..."):
                result = service.run(text_input, prompt or None)
        except InputValidationError as e:
            st.warning(str(e))
            logger.warning("Workflow rejected input", extra={"error": str(e)})
        except PseudonymizationError:
            st.error("Die Verarbeitung ist fehlgeschlagen.")
            logger.error(
                "Workflow failed in UI",
                exc_info=True,
                extra={"text_length": len(text_input) if text_input else 0},
            )

    with col2:
        st.subheader("Pseudonymisierter Text")
        st.text_area(
            "Pseudonymized",
            value=result.pseudonymized_text if result else "",
            height=250,
            disabled=True,
        )

    col3, col4 = st.columns(2)

    with col3:
        st.subheader("Verbesserter Text")
        st.text_area(
            "Improved",
            value=result.improved_text if result else "",
            height=250,
            disabled=True,
        )

    with col4:
        st.subheader("Finaler Text")
        st.text_area(
            "Final", value=result.final_text if result else "", height=250, disabled=True
        )

    if result:
        if result.used_fallback:
            st.info("Simulation aktiv: externe Dienste nicht verfügbar.")
        else:
            st.success(f"Fertig. {len(result.entity_mappings)} Entitäten erkannt.")
        for warning in result.warnings:
            st.warning(warning)

    with st.sidebar:
        st.header("Ablauf")
        st.markdown("""
        1. **Pseudonymisierung**: sensible Angaben werden durch Platzhalter ersetzt
        2. **Verbesserung**: das Sprachmodell sieht nur den pseudonymisierten Text
        3. **Wiederherstellung**: Platzhalter werden durch die Originalwerte ersetzt
        """)

        st.header("Status")
        if settings.extraction_url and settings.openai_api_key:
            st.success("Dienste konfiguriert")
        else:
            st.warning("Simulation: Dienste nicht konfiguriert")


if __name__ == "__main__":
    main()
