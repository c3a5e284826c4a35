# pseudonymization/service/pipeline.py

"""Per-request pseudonymization workflow.

encode -> extract -> decode -> pseudonymize -> improve -> restore. All state
for one request lives in a WorkflowContext that is passed from step to step
and dropped when the request ends; nothing is shared between requests.
"""

import logging
from typing import Optional

from pseudonymization.service.config import Settings, settings as default_settings
from pseudonymization.service.clients import EntityExtractionClient, LanguageModelClient
from pseudonymization.core.loader import VocabularyLoader
from pseudonymization.core.definitions import SourceKind
from pseudonymization.core.domain import (
    ImprovementResult,
    PseudonymizationResult,
    WorkflowContext,
    WorkflowResult,
)
from pseudonymization.core.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    PipelineError,
    PseudonymizationError,
)
from pseudonymization.engine import fallback
from pseudonymization.engine.annotations import decode_response, has_annotations
from pseudonymization.engine.hocr_encoder import encode
from pseudonymization.engine.reconstruction import reconstruct_pseudonymized_text
from pseudonymization.engine.substitution import pseudonymize_with_table, restore_with_report
from pseudonymization.logic.validators import validate_text

logger = logging.getLogger(__name__)


class WorkflowService:
    """Runs the workflow steps against injectable collaborators.

    Collaborators are built lazily from settings so that a missing key only
    fails the requests that need it.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        extraction_client: Optional[EntityExtractionClient] = None,
        language_model: Optional[LanguageModelClient] = None,
    ) -> None:
        self.settings = settings or default_settings
        self._extraction_client = extraction_client
        self._language_model = language_model

    @property
    def extraction_client(self) -> EntityExtractionClient:
        if self._extraction_client is None:
            self._extraction_client = EntityExtractionClient.from_settings(self.settings)
        return self._extraction_client

    @property
    def language_model(self) -> LanguageModelClient:
        if self._language_model is None:
            self._language_model = LanguageModelClient.from_settings(self.settings)
        return self._language_model

    def default_prompt(self) -> str:
        return VocabularyLoader.get_instance().get_default_prompt()

    # Steps

    def _pseudonymize_step(self, context: WorkflowContext, simulate: bool) -> None:
        """Fills document, mappings, and pseudonymized text on the context."""
        context.document = encode(
            context.original_text, with_paragraphs=self.settings.hocr_with_paragraphs
        )

        try:
            response = self.extraction_client.extract(context.document)
            context.mappings = decode_response(response)
            if context.mappings.source == SourceKind.HOCR:
                markup = response.get("hocr", "") if isinstance(response, dict) else response
                if has_annotations(markup):
                    context.annotated_text = reconstruct_pseudonymized_text(markup)
        except (ConfigurationError, ExternalServiceError) as e:
            if isinstance(e, ConfigurationError) and not simulate:
                raise
            logger.warning(
                "Entity extraction unavailable; using fallback heuristics",
                extra={"error_type": type(e).__name__},
            )
            context.warnings.append(f"Entity extraction unavailable: {e}")

        if context.mappings:
            substitution = pseudonymize_with_table(context.original_text, context.mappings.spans)
            context.pseudonymized_text = substitution.text
            context.placeholders = substitution.placeholders
            if substitution.unmatched:
                entities = sorted({context.mappings.spans[s] for s in substitution.unmatched})
                logger.warning(
                    "Mapped entities not found in the original text",
                    extra={"unmatched_count": len(substitution.unmatched)},
                )
                context.warnings.append(
                    "Entities not found in the text and left unchanged: " + ", ".join(entities)
                )
        else:
            context.used_fallback = True
            context.pseudonymized_text = fallback.simulate_pseudonymization(
                context.original_text
            )

    def _improve_step(self, context: WorkflowContext, simulate: bool) -> None:
        prompt = context.prompt or self.default_prompt()
        try:
            context.improved_text = self.language_model.improve(
                context.pseudonymized_text, prompt
            )
        except (ConfigurationError, ExternalServiceError) as e:
            if not simulate:
                raise
            logger.warning(
                "Language model unavailable; using simulated improvement",
                extra={"error_type": type(e).__name__},
            )
            context.warnings.append(f"Language model unavailable: {e}")
            context.used_fallback = True
            context.improved_text = fallback.simulate_improvement(
                context.pseudonymized_text
            )

    def _restore_step(self, context: WorkflowContext) -> None:
        if not context.mappings:
            context.final_text = fallback.simulate_restore(context.improved_text)
            return

        result = restore_with_report(
            context.improved_text,
            context.mappings.spans,
            expected=context.placeholders.keys(),
            placeholders=context.placeholders,
        )
        context.final_text = result.text
        if not result.complete:
            context.warnings.append(
                "Placeholders missing after rewrite: " + ", ".join(result.missing)
            )

    # Operations

    def pseudonymize(self, text: object) -> PseudonymizationResult:
        """Pseudonymizes text through the entity-extraction service.

        Extraction failures fall back to the local heuristics; a missing
        extraction endpoint is a configuration error.
        """
        text = validate_text(text, self.settings.hocr_max_chars)
        context = WorkflowContext(original_text=text)

        logger.info("Starting pseudonymization request", extra={"text_length": len(text)})
        self._run_step(self._pseudonymize_step, context, simulate=False)

        return PseudonymizationResult(
            original_text=text,
            pseudonymized_text=context.pseudonymized_text,
            entity_mappings=dict(context.mappings.labels),
            annotated_text=context.annotated_text,
            source=context.mappings.source,
            used_fallback=context.used_fallback,
            warnings=list(context.warnings),
        )

    def improve(self, text: object, prompt: Optional[str] = None) -> ImprovementResult:
        """Rewrites text with the language model. There is no fallback."""
        text = validate_text(text, self.settings.improve_max_chars)
        prompt = prompt or self.default_prompt()

        logger.info("Starting improvement request", extra={"text_length": len(text)})
        improved = self.language_model.improve(text, prompt)

        return ImprovementResult(original_text=text, improved_text=improved, prompt=prompt)

    def run(self, text: object, prompt: Optional[str] = None) -> WorkflowResult:
        """Runs pseudonymize -> improve -> restore for one request."""
        text = validate_text(text, self.settings.improve_max_chars)
        simulate = self.settings.simulate_when_unavailable
        context = WorkflowContext(original_text=text, prompt=prompt)

        logger.info(
            "Starting workflow request",
            extra={"text_length": len(text), "simulate_when_unavailable": simulate},
        )
        self._run_step(self._pseudonymize_step, context, simulate=simulate)
        self._run_step(self._improve_step, context, simulate=simulate)
        self._run_step(self._restore_step, context)

        logger.info(
            "Workflow completed",
            extra={
                "entity_count": len(context.mappings.entities),
                "used_fallback": context.used_fallback,
                "warning_count": len(context.warnings),
            },
        )

        return WorkflowResult(
            original_text=text,
            pseudonymized_text=context.pseudonymized_text,
            improved_text=context.improved_text,
            final_text=context.final_text,
            entity_mappings=dict(context.mappings.labels),
            used_fallback=context.used_fallback,
            warnings=list(context.warnings),
        )

    @staticmethod
    def _run_step(step, context: WorkflowContext, **kwargs) -> None:
        """Runs a step, wrapping unexpected errors in PipelineError."""
        try:
            step(context, **kwargs)
        except PseudonymizationError:
            raise
        except Exception as e:
            logger.error(
                f"Workflow step failed: {step.__name__}",
                exc_info=True,
                extra={"text_length": len(context.original_text)},
            )
            raise PipelineError(f"Workflow step {step.__name__} failed") from e


_service: Optional[WorkflowService] = None


def get_workflow_service() -> WorkflowService:
    """Returns the process-wide service built from the global settings.

    The service holds configuration and collaborator clients only; request
    state never leaves the WorkflowContext.
    """
    global _service
    if _service is None:
        _service = WorkflowService()
    return _service
