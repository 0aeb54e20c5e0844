import csv
import io
import re
from typing import List

import pandas as pd

from .reports import SUMMARY_COLUMNS, DetailedReport, ReportRow, summary_frame

SUMMARY_FILENAME = 'Survey_Summary_Report.csv'
EXCEL_MIME = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def summary_csv(rows: List[ReportRow]) -> str:
    """Survey summary report.

    The header row is written bare; text values are double-quoted with
    embedded quotes doubled, counts are left unquoted.
    """
    buffer = io.StringIO()
    buffer.write(','.join(SUMMARY_COLUMNS) + '\n')
    summary_frame(rows).to_csv(
        buffer, header=False, index=False, quoting=csv.QUOTE_NONNUMERIC, lineterminator='\n'
    )
    return buffer.getvalue()


def detailed_csv(report: DetailedReport) -> str:
    """Per-response export: every header and value quoted, Timestamp first"""
    buffer = io.StringIO()
    report.to_frame().to_csv(buffer, index=False, quoting=csv.QUOTE_ALL, lineterminator='\n')
    return buffer.getvalue()


def detailed_excel(report: DetailedReport) -> bytes:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        report.to_frame().to_excel(writer, index=False, sheet_name='Survey Responses')
    buffer.seek(0)
    return buffer.getvalue()


def export_filename(survey_name: str, suffix: str = '_Responses.csv') -> str:
    safe_name = re.sub(r'[^a-zA-Z0-9\s]', '', survey_name or '')
    return f"{safe_name}{suffix}"
