from __future__ import annotations

from pathlib import Path

import pandas as pd

from storedesk.carriers import tracking_code
from storedesk.core.db import StoreRepository


def export_orders(repository: StoreRepository, formats: list[str], out_dir: Path) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(repository.fetch_export_rows())
    if not df.empty:
        df["tracking_code"] = df["shipping_id"].map(lambda value: tracking_code(value) if value else "")

    created_files: list[Path] = []
    if "csv" in formats:
        csv_path = (out_dir / "storedesk_orders.csv").resolve()
        df.to_csv(csv_path, index=False, encoding="utf-8-sig")
        created_files.append(csv_path)

    if "xlsx" in formats:
        xlsx_path = (out_dir / "storedesk_orders.xlsx").resolve()
        with pd.ExcelWriter(xlsx_path, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="orders")
        created_files.append(xlsx_path)

    return created_files
