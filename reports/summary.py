import json
import logging
import os
from typing import Iterable, Optional

from groq import Groq

from edutrack.models import AttendanceRecord, CoinTransaction, Student
from .stats import section_stats

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "API Key missing. Unable to generate report."
FAILED_MESSAGE = "Failed to generate report due to an error."
EMPTY_MESSAGE = "No report generated."

SYSTEM_PROMPT = """You are a school administrator assistant for the EduTrack school management system.
You receive aggregated engagement data as JSON and write a professional executive summary in Markdown.
Keep the tone formal and encouraging."""

USER_PROMPT = """Analyze the following raw data from our school management system:
{stats}

Please provide a professional executive summary formatted in Markdown. Include:
1. A brief overview of school engagement (attendance and rewards).
2. Identification of the top-performing section based on coins and attendance.
3. Three specific, actionable recommendations for the principal to improve student engagement."""


def build_summary_stats(
    students: Iterable[Student],
    attendance: Iterable[AttendanceRecord],
    transactions: Iterable[CoinTransaction],
) -> dict:
    students = list(students)
    attendance = list(attendance)
    return {
        "totalStudents": len(students),
        "totalCoins": sum(t.amount for t in transactions),
        "totalAttendance": len(attendance),
        "sectionStats": {
            s.section: {"coins": s.coins, "attendance": s.attendance}
            for s in section_stats(students, attendance)
        },
    }


class SummaryGenerator:
    def __init__(self, api_key: Optional[str] = None, model: str = "llama-3.3-70b-versatile"):
        self.api_key = api_key or os.getenv("GROQ_API_KEY")
        self.client = None
        self.model = model

        if self.api_key:
            self.client = Groq(api_key=self.api_key)

    @property
    def is_available(self) -> bool:
        return self.client is not None

    def generate(
        self,
        students: Iterable[Student],
        attendance: Iterable[AttendanceRecord],
        transactions: Iterable[CoinTransaction],
    ) -> str:
        if not self.client:
            logger.warning("GROQ_API_KEY is missing; AI reports are disabled")
            return MISSING_KEY_MESSAGE

        stats = build_summary_stats(students, attendance, transactions)
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": USER_PROMPT.format(stats=json.dumps(stats, indent=2))},
                ],
                temperature=0.4,
                max_tokens=1024,
            )
            return response.choices[0].message.content or EMPTY_MESSAGE
        except Exception as e:
            logger.warning("Groq report generation failed: %s", e)
            return FAILED_MESSAGE
