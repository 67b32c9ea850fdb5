from sqlalchemy import Column, DateTime, Index, MetaData, Table, Unicode

# Shared metadata for every per-camera table.
metadata = MetaData()


def detection_table(table_name: str, meta: MetaData = metadata) -> Table:
    """
    Table for one camera's detections. Every camera gets its own table with
    the same columns, so the table is built by name instead of declared once.

    PicName is the dedup key. It is indexed, not UNIQUE: existing tables were
    created without the constraint and the sync is the only writer.
    CaptureTime and InsertTime are zoneless, holding device-zone wall-clock.
    """
    if table_name in meta.tables:
        return meta.tables[table_name]

    return Table(
        table_name,
        meta,
        Column("CaptureTime", DateTime(), nullable=False),
        Column("PlateNumber", Unicode(50), nullable=True),
        Column("PicName", Unicode(100), nullable=False),
        Column("Country", Unicode(10), nullable=True),
        Column("Direction", Unicode(20), nullable=True),
        Column("InsertTime", DateTime(), nullable=False),
        Index(f"ix_{table_name}_PicName", "PicName"),
        Index(f"ix_{table_name}_CaptureTime", "CaptureTime"),
    )
