from collections import deque

import pytest

from pseudonymization.core.exceptions import ExternalServiceError
from pseudonymization.service.config import Settings
from pseudonymization.service.pipeline import WorkflowService


ANNOTATED_HOCR = """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
 <body>
  <div class='ocr_page' id='page_1' title='image "synthetic"; bbox 0 0 800 600; ppageno 0'>
   <p class='ocr_par' id='par_1_1' title='bbox 50 50 400 104'>
    <span class='ocr_line' id='line_1_1' title='bbox 50 50 400 74'>
     <span class='ocrx_word' id='word_1_1' title='bbox 50 50 110 74; x_wconf 95'>Meine</span>
     <span class='ocrx_word' id='word_1_2' title='bbox 120 50 168 74; x_wconf 95'>Name</span>
     <span class='ocrx_word' id='word_1_3' title='bbox 178 50 214 74; x_wconf 95'>ist</span>
     <span class='ocrx_word' id='word_1_4' title='x_sensibility 1; bbox 224 50 296 74; x_entity first_name 0'>Korben</span>
     <span class='ocrx_word' id='word_1_5' title='x_sensibility 1; bbox 306 50 378 74; x_entity last_name 0'>Dallas</span>
    </span>
    <span class='ocr_line' id='line_1_2' title='bbox 50 80 300 104'>
     <span class='ocrx_word' id='word_1_6' title='bbox 50 80 86 104; x_wconf 95'>Ich</span>
     <span class='ocrx_word' id='word_1_7' title='bbox 96 80 156 104; x_wconf 95'>wohne</span>
     <span class='ocrx_word' id='word_1_8' title='bbox 166 80 190 104; x_wconf 95'>in</span>
     <span class='ocrx_word' id='word_1_9' title='bbox 200 80 272 104; x_entity city 0'>Berlin</span>
    </span>
   </p>
   <p class='ocr_par' id='par_1_2' title='bbox 50 130 200 154'>
    <span class='ocr_line' id='line_1_3' title='bbox 50 130 200 154'>
     <span class='ocrx_word' id='word_1_10' title='bbox 50 130 110 154; x_wconf 95'>Danke</span>
     <span class='ocrx_word' id='word_1_11'>Gruss</span>
    </span>
   </p>
  </div>
 </body>
</html>
"""

ANNOTATED_SOURCE_TEXT = "Meine Name ist Korben Dallas.\nIch wohne in Berlin.\n\nDanke Gruss"


class FakeExtractionClient:
    """Returns queued responses; an exception instance in the queue is raised."""

    def __init__(self, *responses):
        self.responses = deque(responses)
        self.documents = []

    def extract(self, document):
        self.documents.append(document)
        response = self.responses.popleft() if self.responses else ""
        if isinstance(response, Exception):
            raise response
        return response


class FakeLanguageModel:
    def __init__(self, transform=None, error=None):
        self.transform = transform or (lambda text: text)
        self.error = error
        self.calls = []

    def improve(self, text, prompt):
        self.calls.append((text, prompt))
        if self.error:
            raise self.error
        return self.transform(text)


def make_settings(**overrides):
    values = {
        "openai_api_key": "test-key",
        "extraction_url": "http://extraction.test/annotate",
        "simulate_when_unavailable": True,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_service(extraction=None, language_model=None, **overrides):
    return WorkflowService(
        settings=make_settings(**overrides),
        extraction_client=extraction,
        language_model=language_model,
    )


@pytest.fixture
def annotated_hocr():
    return ANNOTATED_HOCR


@pytest.fixture
def source_text():
    return ANNOTATED_SOURCE_TEXT


@pytest.fixture
def json_tree():
    return {
        "type": "page",
        "id": "page_1",
        "children": [
            {
                "type": "line",
                "id": "line_1",
                "children": [
                    {
                        "type": "word",
                        "id": 1,
                        "text": "Korben",
                        "attributes": {"x_entity": "first_name 0"},
                    },
                    {"type": "word", "id": 2, "text": "wohnt", "attributes": {}},
                ],
            }
        ],
        "metadata": {
            "regions": {
                "extra": {
                    "type": "word",
                    "id": 3,
                    "text": "Berlin",
                    "attributes": {"x_entity": "city"},
                }
            }
        },
    }


@pytest.fixture
def unavailable():
    return ExternalServiceError("boom", service="entity-extraction", status_code=503)


@pytest.fixture
def service_factory():
    return make_service


@pytest.fixture
def extraction_factory():
    return FakeExtractionClient


@pytest.fixture
def language_model_factory():
    return FakeLanguageModel
