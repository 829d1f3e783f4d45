"""Prompt construction for insulin dose recommendations.

The prompt is a single tagged text document: task, prioritized instructions,
glucose reading status, patient context, recent history, medication pattern
analysis, response schema, one good and one bad example, and a closing
safety reminder.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from insulin_advisor.config import GlucoseTargetRanges
from insulin_advisor.models.entry import Entry, entry_brand, entry_units
from insulin_advisor.models.patient import Medication, Patient
from insulin_advisor.recommendation.history import HistoryWindow
from insulin_advisor.recommendation.patterns import analyze_medication_patterns
from insulin_advisor.shared.localtime import format_local

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a medical AI assistant specializing in diabetes management and insulin "
    "dosing recommendations. You provide evidence-based recommendations based on patient "
    "data, but always remind users that these are suggestions and should be reviewed by "
    "healthcare professionals. Be conservative in your recommendations and prioritize "
    "patient safety. You must respond only with valid JSON in the exact format requested."
)


def normalize_medications(raw: Any) -> list[Medication]:
    """Normalize a patient's usual medications.

    Accepts a JSON-encoded string, a list of dicts or a list of Medication.
    Anything unparsable yields an empty list; this never raises.
    """
    if raw is None:
        return []
    try:
        if isinstance(raw, (str, bytes)):
            raw = json.loads(raw or "[]")
        if not isinstance(raw, list):
            return []
        return [item if isinstance(item, Medication) else Medication.model_validate(item) for item in raw]
    except (ValueError, TypeError, ValidationError) as e:
        # json.JSONDecodeError is a ValueError
        logger.warning(f"Ignoring unparsable usual medications: {e}")
        return []


@dataclass(frozen=True)
class GlucoseReadingStatus:
    """Whether the newest glucose reading post-dates the newest insulin dose."""

    latest_glucose: Optional[Entry]
    latest_insulin: Optional[Entry]

    @property
    def is_stale(self) -> bool:
        if self.latest_glucose is None or self.latest_insulin is None:
            return False
        return self.latest_glucose.occurred_at < self.latest_insulin.occurred_at


def glucose_reading_status(entries: Sequence[Entry]) -> GlucoseReadingStatus:
    glucose = [e for e in entries if e.entry_type == "glucose"]
    insulin = [e for e in entries if e.entry_type == "insulin"]
    return GlucoseReadingStatus(
        latest_glucose=max(glucose, key=lambda e: e.occurred_at, default=None),
        latest_insulin=max(insulin, key=lambda e: e.occurred_at, default=None),
    )


def _format_entry(entry: Entry, tz_name: str) -> str:
    tag = entry.entry_type.upper()
    units = entry_units(entry)
    brand = entry_brand(entry)
    value = entry.value + (f" {units}" if units else "")
    if brand:
        value += f" ({brand})"
    return (
        f"<{tag}>\n"
        f"    <VALUE>{value}</VALUE>\n"
        f"    <OCCURRED_AT>{format_local(entry.occurred_at, tz_name)}</OCCURRED_AT>\n"
        f"    </{tag}>"
    )


def _format_value(entry: Entry) -> str:
    units = entry_units(entry)
    return entry.value + (f" {units}" if units else "")


GOOD_EXAMPLE = """{
  "doseUnits": 15,
  "medicationName": "Actrapid",
  "reasoning": "Current glucose reading is 220 mg/dL, which is significantly above the target range of 100-150 mg/dL. The patient's glucose has been trending upward over the past 24 hours, with readings of 180, 195, and now 220 mg/dL. This suggests inadequate insulin coverage. The last insulin dose was 8 IU of Actrapid 6 hours ago, but glucose continued to rise. Actrapid is maintained as the medication choice since it's consistently used by this patient for morning insulin administration, maintaining brand consistency. However, the dose is increased to 15 IU (from the usual 8-10 IU range) to address the current high glucose and upward trend.",
  "safetyNotes": "This is a higher dose than recent administrations. Monitor glucose closely at 1, 2, and 4 hours post-administration. Have fast-acting carbohydrates available. Consider reducing the dose if patient is planning significant physical activity.",
  "confidence": "medium",
  "recommendedMonitoring": "Check glucose at 1, 2, and 4 hours post-administration. Monitor for signs of hypoglycemia. If glucose remains high after 2 hours, consider additional insulin or contact healthcare provider."
}"""

BAD_EXAMPLE = """{
  "doseUnits": 8,
  "medicationName": "Actrapid",
  "reasoning": "Patient usually takes 8 IU of Actrapid",
  "safetyNotes": "Be careful",
  "confidence": "high",
  "recommendedMonitoring": "Check glucose"
}
{
  "doseUnits": 12,
  "medicationName": "Actrapid",
  "reasoning": "The patient's glucose was 181 mg/dL at 7:00 AM, so a higher dose is recommended after lunch.",
  "safetyNotes": "Monitor for hypoglycemia.",
  "confidence": "medium",
  "recommendedMonitoring": "Check glucose after 2 hours."
}"""


class RecommendationPromptBuilder:
    """Renders the recommendation prompt for one request."""

    def __init__(self, ranges: Optional[GlucoseTargetRanges] = None):
        self.ranges = ranges or GlucoseTargetRanges()

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build(
        self,
        patient: Patient,
        window: HistoryWindow,
        target_time: datetime,
        tz_name: str = "UTC",
        pattern_analysis: Optional[str] = None,
    ) -> str:
        """Build the full prompt.

        Args:
            patient: Patient profile
            window: History window with most-recent and older sub-lists
            target_time: When the dose is planned to be administered
            tz_name: Caregiver's IANA timezone for all rendered times
            pattern_analysis: Precomputed pattern summary; derived from the
                window's insulin entries when omitted

        Returns:
            The prompt text sent as the user turn
        """
        if pattern_analysis is None:
            pattern_analysis = analyze_medication_patterns(window.insulin_entries, tz_name)

        status = glucose_reading_status(window.recent_entries)

        sections = [
            self._task(),
            self._instructions(),
            self._glucose_status(status, tz_name),
            "<CONTEXT>",
            self._patient_info(patient, window.now),
            self._target_time(target_time, tz_name),
            self._recent_history(window, tz_name),
            self._pattern_analysis(pattern_analysis),
            "</CONTEXT>",
            self._response_format(),
            f"<GOOD_EXAMPLE>\n{GOOD_EXAMPLE}\n</GOOD_EXAMPLE>",
            f"<BAD_EXAMPLE>\n{BAD_EXAMPLE}\n</BAD_EXAMPLE>",
            self._final_instructions(),
        ]
        return "\n\n".join(sections) + "\n"

    def _task(self) -> str:
        return (
            "<TASK>\n"
            "You are a medical AI assistant specializing in diabetes management and insulin dosing "
            "recommendations. Your task is to analyze patient data and provide evidence-based insulin "
            "dose recommendations for administration at a specific target time, prioritizing recent "
            "glucose readings and patterns over historical medication preferences.\n"
            "</TASK>"
        )

    def _instructions(self) -> str:
        r = self.ranges
        return f"""<INSTRUCTIONS>
You must provide your response in the exact JSON format specified below. Do not include any additional text, explanations, or formatting outside of the JSON structure.

Consider the following factors when making your recommendation, in order of priority:
1. **CURRENT GLUCOSE LEVELS**: The most recent glucose reading is the primary factor. If glucose is high, consider higher doses; if low, consider lower doses.
2. **GLUCOSE TRENDS**: Look at glucose patterns over the past 24-72 hours to understand the patient's current metabolic state.
3. **Recent meals and their timing relative to the target administration time**
4. **Previous insulin doses and their effectiveness** (how well recent doses controlled glucose)
5. **Patient's diabetes type and current health status**
6. **Time until administration and potential glucose changes**
7. **Patient's lifestyle and activity level**
8. **Safety considerations to minimize risk of hypoglycemia or hyperglycemia**
9. **MEDICATION SELECTION**: Choose the medication based on:
   - **TIME-BASED PATTERNS**: Maintain consistency with the patient's usual medication schedule for specific times of day (e.g., if they use Actrapid in the morning, continue using Actrapid in the morning)
   - **BRAND CONSISTENCY**: Use the medication brand shown in the MEDICATION_PATTERN_ANALYSIS for this time of day. Only change brand if there is a compelling clinical reason, and state that reason explicitly
   - **DOSE FLEXIBILITY**: While keeping the same medication brand, adjust the dose based on current glucose levels and recent trends
   - **The patient's usual medications as the primary reference for brand selection**

**For morning fasted blood sugar, the ideal target range is {r.target_min}-{r.target_max} mg/dL.**

Glucose thresholds (mg/dL): very low (hypoglycemia) below {r.very_low}, low below {r.low}, high above {r.high}, very high above {r.very_high}.

The morning fasted blood sugar target range represents the optimal glucose level for patients after an overnight fast and before breakfast. Maintaining glucose within this range helps minimize the risk of both hypoglycemia (low blood sugar) and hyperglycemia (high blood sugar) at the start of the day.

**IMPORTANT**: Base your dose primarily on the current glucose reading and recent trends, not on historical averages. Recent glucose readings and patterns should drive the dose more than historical preferences.

**IMPORTANT CLINICAL RULE**: Only use a glucose reading as the primary basis for insulin dosing if it was measured after the most recent insulin dose. Meals do not invalidate a glucose reading for dosing purposes. See GLUCOSE_READING_STATUS below.

**NOTE**: The recent history is divided into two sections: "MOST RECENT ENTRIES" (last 24 hours) and "OLDER ENTRIES" (24-72 hours ago), each listed newest first. Pay special attention to the most recent entries as they are most relevant for current dosing decisions.

Always prioritize patient safety and be conservative in your recommendations.
</INSTRUCTIONS>"""

    def _glucose_status(self, status: GlucoseReadingStatus, tz_name: str) -> str:
        glucose, insulin = status.latest_glucose, status.latest_insulin

        if status.is_stale:
            body = (
                "**STALE GLUCOSE READING**: The most recent glucose reading "
                f"({_format_value(glucose)} at {format_local(glucose.occurred_at, tz_name)}) was measured "
                "BEFORE the most recent insulin dose "
                f"({_format_value(insulin)} at {format_local(insulin.occurred_at, tz_name)}). "
                "It does not reflect the patient's state after that dose. Do NOT use it as the primary "
                "basis for this recommendation. Base the dose on recent glucose trends, the patient's "
                "usual doses, and safety, lean conservative, set confidence no higher than \"medium\", "
                "and clearly state in your reasoning that a fresh glucose reading is needed before "
                "administration for optimal dosing."
            )
        elif glucose is None:
            body = (
                "No glucose readings were recorded in the last 72 hours. Base the recommendation on "
                "usual doses and safety, and state that a new glucose reading is needed before "
                "administration."
            )
        elif insulin is None:
            body = (
                "The most recent glucose reading "
                f"({_format_value(glucose)} at {format_local(glucose.occurred_at, tz_name)}) is the "
                "primary basis for dosing. No insulin doses were recorded in the last 72 hours."
            )
        else:
            body = (
                "The most recent glucose reading "
                f"({_format_value(glucose)} at {format_local(glucose.occurred_at, tz_name)}) was measured "
                "after the most recent insulin dose "
                f"({_format_value(insulin)} at {format_local(insulin.occurred_at, tz_name)}) and may be "
                "used as the primary basis for dosing."
            )
        return f"<GLUCOSE_READING_STATUS>\n{body}\n</GLUCOSE_READING_STATUS>"

    def _patient_info(self, patient: Patient, now: datetime) -> str:
        medications = normalize_medications(patient.usual_medications)
        meds = ", ".join(
            f"{m.brand} {m.dosage}".strip() + (f" ({m.timing})" if m.timing else "")
            for m in medications
        )
        activity = patient.activity_level.value if patient.activity_level else "Not specified"
        return (
            "<PATIENT_INFO>\n"
            f"- Name: {patient.name}\n"
            f"- Age: {patient.age_on(now.date())} years old\n"
            f"- Diabetes Type: {patient.diabetes_type.label}\n"
            f"- Lifestyle: {patient.lifestyle or 'Not specified'}\n"
            f"- Activity Level: {activity}\n"
            f"- Usual Medications: {meds or 'None recorded'}\n"
            "</PATIENT_INFO>"
        )

    def _target_time(self, target_time: datetime, tz_name: str) -> str:
        return (
            "<TARGET_TIME>\n"
            f"Target Administration Time: {format_local(target_time, tz_name)}\n"
            "</TARGET_TIME>"
        )

    def _recent_history(self, window: HistoryWindow, tz_name: str) -> str:
        if not window.recent_entries:
            return "<RECENT_HISTORY>\nNo recent entries in the last 72 hours.\n</RECENT_HISTORY>"

        parts = []
        if window.most_recent:
            parts.append(
                "MOST RECENT ENTRIES (Last 24 hours):\n"
                + "\n".join(_format_entry(e, tz_name) for e in window.most_recent)
            )
        else:
            parts.append("No entries in the last 24 hours.")

        if window.older:
            parts.append(
                "OLDER ENTRIES (24-72 hours ago):\n"
                + "\n".join(_format_entry(e, tz_name) for e in window.older)
            )

        return "<RECENT_HISTORY>\n" + "\n\n".join(parts) + "\n</RECENT_HISTORY>"

    def _pattern_analysis(self, pattern_analysis: str) -> str:
        return (
            "<MEDICATION_PATTERN_ANALYSIS>\n"
            "Based on recent insulin administration patterns:\n"
            f"{pattern_analysis}\n"
            "</MEDICATION_PATTERN_ANALYSIS>"
        )

    def _response_format(self) -> str:
        return """<RESPONSE_FORMAT>
Provide your recommendation in the following exact JSON format. Do not include any text before or after the JSON:

{
  "doseUnits": <number>,
  "medicationName": "<medication name from recent history or usual medications>",
  "reasoning": "<detailed explanation of your recommendation>",
  "safetyNotes": "<any important safety warnings or considerations>",
  "confidence": "<high|medium|low>",
  "recommendedMonitoring": "<specific monitoring recommendations>"
}

Where:
- doseUnits: Recommended insulin dose in IU (International Units), based primarily on current glucose and recent trends
- medicationName: The medication name from recent history, usual medications, or a logical choice based on timing and duration needed
- reasoning: Detailed explanation focusing on current glucose levels, recent trends, and why this dose/medication is appropriate now
- safetyNotes: Any important safety warnings, contraindications, or special considerations
- confidence: Your confidence level in this recommendation (high/medium/low)
- recommendedMonitoring: Specific recommendations for glucose monitoring after administration
</RESPONSE_FORMAT>"""

    def _final_instructions(self) -> str:
        return (
            "<FINAL_INSTRUCTIONS>\n"
            "Remember: This is a medical recommendation that should be reviewed by healthcare "
            "professionals before administration. Base your dose recommendation primarily on current "
            "glucose readings and recent trends, but maintain consistency with the patient's usual "
            "medication brand for the specific time of day. Provide detailed, evidence-based reasoning "
            "that explains why this specific dose is appropriate for the current situation while "
            "maintaining the patient's established medication routine. Always prioritize patient safety, "
            "and keep the same medication brand unless there's a compelling clinical reason to change.\n"
            "</FINAL_INSTRUCTIONS>"
        )
