"""
SLAM - Row store adapter.

Presents a SQLAlchemy model as a header-labeled table keyed by one column,
so the CRUD layer talks in "SLA ID" / "Target Value" rather than in ORM
attributes.  Row handles are model instances bound to the current session.

Computed columns (derived progress, the row version) are owned by the
store: they can be read but never written through this adapter, and an
appended row must leave them blank.
"""

import logging

from slam.models import db

logger = logging.getLogger(__name__)


class RowStoreError(Exception):
    """Illegal access to the row store (unknown or computed column)."""


class RowStore:
    def __init__(self, model, fields, key_header, computed=()):
        self.model = model
        self.fields = tuple(fields)
        self._attr_by_header = {spec.header: spec.attr for spec in self.fields}
        if key_header not in self._attr_by_header:
            raise RowStoreError(f"Key column {key_header!r} is not a known header")
        self.key_header = key_header
        self.key_attr = self._attr_by_header[key_header]
        self.computed = frozenset(computed)

    @property
    def headers(self):
        return [spec.header for spec in self.fields]

    def _attr(self, header):
        try:
            return self._attr_by_header[header]
        except KeyError:
            raise RowStoreError(f"Unknown column {header!r}") from None

    def _ordered(self):
        pk = self.model.__mapper__.primary_key[0]
        return self.model.query.order_by(pk)

    # ── reads ────────────────────────────────────────────────────────────

    def find_row_by_key(self, key, for_update=False):
        """First row whose key column equals ``key``, or None.

        ``for_update`` takes a row lock where the database supports it.
        """
        if key is None or not str(key).strip():
            return None
        query = self._ordered().filter(getattr(self.model, self.key_attr) == str(key).strip())
        if for_update:
            query = query.with_for_update()
        return query.first()

    def read_row(self, row) -> dict:
        """Every column of ``row`` as ``{header: raw cell value}``."""
        return {spec.header: getattr(row, spec.attr) for spec in self.fields}

    def iter_rows(self):
        """Rows in insertion order, skipping rows without a key value."""
        for row in self._ordered():
            key = getattr(row, self.key_attr)
            if key is None or not str(key).strip():
                continue
            yield row

    # ── writes ───────────────────────────────────────────────────────────

    def write_cell(self, row, header, value):
        if header in self.computed:
            raise RowStoreError(f"Column {header!r} is computed by the store and cannot be written")
        setattr(row, self._attr(header), value)

    def append_row(self, values: dict):
        """Add a new row from ``{header: value}``; missing headers stay at their defaults."""
        for header in self.computed:
            if values.get(header) not in (None, ""):
                raise RowStoreError(f"Column {header!r} is computed by the store and must be blank")
        row = self.model()
        for header, value in values.items():
            if header in self.computed:
                continue
            setattr(row, self._attr(header), value)
        db.session.add(row)
        return row

    def flush(self):
        """Push pending writes; derived columns are only current after this."""
        db.session.flush()
