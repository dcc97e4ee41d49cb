"""Authoring Stage - Produce an AI-authored protocol text from a prompt.

The generator renders a fixed protocol template around the prompt. It is the
entry point for sessions that start from a study description instead of an
uploaded document.
"""

import logging
import time
from typing import Callable, Optional

from protofhir.models import ExtractedText, TextProvenance

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = (
    "Generate a clinical study protocol for treating hypertension with lifestyle interventions"
)

PROTOCOL_TEMPLATE = """
CLINICAL STUDY PROTOCOL: {title}

Protocol ID: AI-GEN-{protocol_number}
Principal Investigator: Dr. Emma Larsson, MD, PhD
Institution: Karolinska Institute, Stockholm

STUDY OVERVIEW:
A randomized controlled trial investigating innovative treatment approaches.

PATIENT POPULATION:
Inclusion Criteria:
- Adults aged 18-65 years
- Confirmed diagnosis via standard criteria
- Written informed consent obtained

Exclusion Criteria:
- Pregnancy or lactation
- Severe comorbidities
- Previous adverse reactions to study medications

TREATMENT PROTOCOL:
Active Treatment Group:
- Primary medication: 10mg daily, titrated based on response
- Secondary medication: 5mg twice daily
- Lifestyle counseling sessions (weekly for 4 weeks)

Control Group:
- Standard care per clinical guidelines
- Placebo medication matching active treatment
- Standard lifestyle advice

STUDY PROCEDURES:
Baseline Visit (Week 0):
- Complete medical history and physical examination
- Laboratory tests: CBC, comprehensive metabolic panel, lipid profile
- Vital signs assessment
- Quality of life questionnaires

Follow-up Visits (Weeks 2, 4, 8, 12, 24):
- Vital signs monitoring
- Adverse event assessment
- Medication adherence evaluation
- Laboratory tests as indicated

PRIMARY ENDPOINTS:
- Time to clinical improvement (defined as >20% reduction in primary outcome measure)
- Safety and tolerability profile

SECONDARY ENDPOINTS:
- Changes in biomarker levels
- Quality of life scores
- Healthcare resource utilization

STATISTICAL PLAN:
Sample size: 200 patients (100 per group)
Power: 80% to detect clinically meaningful difference
Analysis: Intention-to-treat and per-protocol populations

CONTACT INFORMATION:
Study Coordinator: Dr. Anna Johansson
Phone: +46 8 517 700 00
Email: anna.johansson@ki.se
Emergency Contact: Available 24/7

This protocol has been reviewed and approved by the Regional Ethics Committee.
"""


def _millis() -> int:
    return int(time.time() * 1000)


class ProtocolAuthor:
    """Generates protocol text for a study description."""

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        """Initialize the author.

        Args:
            clock: Returns the protocol number (milliseconds since epoch by default).
        """
        self.clock = clock or _millis

    def author(self, prompt: Optional[str] = None) -> ExtractedText:
        """Render a protocol for the prompt.

        Args:
            prompt: Study description; blank prompts use DEFAULT_PROMPT.

        Returns:
            ExtractedText tagged as AI-generated.
        """
        prompt = (prompt or "").strip() or DEFAULT_PROMPT
        text = PROTOCOL_TEMPLATE.format(
            title=prompt.upper(),
            protocol_number=self.clock(),
        )
        logger.info("Authored protocol text (%d characters)", len(text))
        return ExtractedText(text=text, provenance=TextProvenance.AI_GENERATED)
