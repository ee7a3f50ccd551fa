"""Document text extraction service (S3 -> Textract -> Comprehend)."""

__version__ = "1.0.0"
