"""Repository query helpers."""

PAGE_SIZE = 500


def fetch_all(query, page_size: int = PAGE_SIZE) -> list:
    """Drain a protean queryset page by page instead of relying on its default limit."""
    records = []
    offset = 0
    while True:
        page = query.offset(offset).limit(page_size).all().items
        records.extend(page)
        if len(page) < page_size:
            return records
        offset += page_size
