"""
Check-in Data Health
Blueprint registry and shared request helpers.
"""

from flask import current_app, request


def page_args():
    """Read page/perPage pagination params from the query string.

    Query params:
        page    : 1-based page number (default 1)
        perPage : page size (default REPORT_PAGE_SIZE, capped at REPORT_MAX_PAGE_SIZE)

    Returns:
        (page, per_page)
    """
    default_size = current_app.config.get("REPORT_PAGE_SIZE", 50)
    max_size = current_app.config.get("REPORT_MAX_PAGE_SIZE", 500)
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        per_page = min(max(int(request.args.get("perPage", default_size)), 1), max_size)
    except (ValueError, TypeError):
        per_page = default_size
    return page, per_page
