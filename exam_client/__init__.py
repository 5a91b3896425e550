from exam_client.main import ExamClient, create_client

__version__ = "1.0.0"

__all__ = ["ExamClient", "create_client"]
