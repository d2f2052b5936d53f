from .document_conversion import CONVERSION_STEPS, convert_documents

__all__ = ["CONVERSION_STEPS", "convert_documents"]
