"""
HTML report output.
"""

from sqlbenchaudit.infrastructure.report.html_renderer import HtmlReportRenderer

__all__ = ["HtmlReportRenderer"]
