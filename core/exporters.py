"""
Excel report export for an analysis result.
Writes monthly spending, business spending, subscriptions and transactions
to separate sheets.
"""
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from core.config import get_settings
from core.exceptions import ExportError
from core.logger import setup_logger
from core.schema import AnalysisResult

logger = setup_logger(__name__)

SHEET_MONTHS = "Месеци"
SHEET_BUSINESSES = "Търговци"
SHEET_SUBSCRIPTIONS = "Абонаменти"
SHEET_TRANSACTIONS = "Транзакции"


def build_report_frames(result: AnalysisResult) -> Dict[str, pd.DataFrame]:
    """
    Flatten an analysis result into one DataFrame per sheet.

    Args:
        result: Analysis result

    Returns:
        Mapping of sheet name to DataFrame
    """
    months = pd.DataFrame(
        [
            {"Месец": m.month, "Разходи": float(m.amount), "Брой": len(m.transactions)}
            for m in result.monthly_spending
        ],
        columns=["Месец", "Разходи", "Брой"],
    )

    businesses = pd.DataFrame(
        [
            {
                "Търговец": b.name,
                "Група": b.group,
                "Разходи": float(b.amount),
                "Брой": len(b.transactions),
                "Оригинални имена": "; ".join(b.original_names),
            }
            for b in result.business_spending
        ],
        columns=["Търговец", "Група", "Разходи", "Брой", "Оригинални имена"],
    )

    subscriptions = pd.DataFrame(
        [
            {
                "Търговец": s.business_name,
                "Средна сума": float(s.average_amount),
                "Валута": s.foreign_currency.currency if s.foreign_currency else "",
                "Плащания": s.consecutive_months,
                "Първо плащане": s.first_payment.isoformat(),
                "Последно плащане": s.last_payment.isoformat(),
                "Активен": "Да" if s.is_active else "Не",
            }
            for s in result.subscriptions
        ],
        columns=["Търговец", "Средна сума", "Валута", "Плащания", "Първо плащане", "Последно плащане", "Активен"],
    )

    transactions = pd.DataFrame(
        [
            {
                "Дата": t.raw_date,
                "Тип": t.movement_type,
                "Сума": float(t.amount),
                "Търговец": t.business_name,
                "Контрагент": t.opposite_side_name,
                "Основание": t.reason,
            }
            for t in result.transactions
        ],
        columns=["Дата", "Тип", "Сума", "Търговец", "Контрагент", "Основание"],
    )

    return {
        SHEET_MONTHS: months,
        SHEET_BUSINESSES: businesses,
        SHEET_SUBSCRIPTIONS: subscriptions,
        SHEET_TRANSACTIONS: transactions,
    }


def export_analysis_to_excel(result: AnalysisResult, output_path: str) -> str:
    """
    Export an analysis result to an Excel workbook.

    Args:
        result: Analysis result
        output_path: Output file path

    Returns:
        Path to created file

    Raises:
        ExportError: If the workbook cannot be written
    """
    frames = build_report_frames(result)
    logger.info(f"Exporting {len(result.transactions)} transactions to {output_path}")

    try:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)

        with pd.ExcelWriter(output_path, engine="xlsxwriter") as writer:
            money_format = writer.book.add_format({"num_format": "#,##0.00"})

            for sheet_name, df in frames.items():
                df.to_excel(writer, sheet_name=sheet_name, index=False)
                worksheet = writer.sheets[sheet_name]

                # Approximate auto-fit
                for idx, col in enumerate(df.columns):
                    values_len = df[col].astype(str).map(len).max() if len(df) else 0
                    width = min(max(values_len, len(str(col))) + 2, 60)
                    cell_format = money_format if pd.api.types.is_float_dtype(df[col]) else None
                    worksheet.set_column(idx, idx, width, cell_format)

        logger.info(f"Successfully exported to {output_path}")
        return output_path

    except Exception as e:
        logger.error(f"Failed to export Excel: {e}")
        raise ExportError(
            "Failed to export analysis to Excel",
            details={"output_path": output_path, "error": str(e)},
        )


def create_output_filename(prefix: str = "ledger_analysis", base_path: Optional[str] = None) -> str:
    """
    Create timestamped output filename.

    Args:
        prefix: File name prefix
        base_path: Base directory path (defaults to configured storage path)

    Returns:
        Full output file path
    """
    if base_path is None:
        base_path = get_settings().storage_path

    Path(base_path).mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    filename = f"{prefix}_{timestamp}.xlsx"

    return str(Path(base_path) / filename)
