from .excel_adapter import ExcelAdapter, SheetData

__all__ = ["ExcelAdapter", "SheetData"]
