from flask import request
from sqlalchemy import or_

DEFAULT_PER_PAGE = 50
MAX_PER_PAGE = 200


def page_args(default_per_page=DEFAULT_PER_PAGE):
    """Reads page/per_page from the query string, clamped to sane bounds."""
    page = request.args.get("page", 1, type=int) or 1
    per_page = request.args.get("per_page", default_per_page, type=int) or default_per_page
    return max(page, 1), min(max(per_page, 1), MAX_PER_PAGE)


def apply_pagination_and_search(query, model, search_term, search_columns, page=1, per_page=DEFAULT_PER_PAGE):
    """
    Filters ``query`` with a case-insensitive substring match on any of
    ``search_columns`` (attribute names on ``model``) and returns the
    Flask-SQLAlchemy Pagination for the requested page.
    """
    search_term = (search_term or "").strip()
    if search_term:
        query = query.filter(or_(
            *[getattr(model, col).ilike(f"%{search_term}%") for col in search_columns]
        ))
    return query.paginate(page=page, per_page=per_page, error_out=False)


def paginated_body(paginated, serialize):
    return {
        "success": True,
        "data": [serialize(item) for item in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "pages": paginated.pages,
    }
