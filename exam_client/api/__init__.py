from exam_client.api.http import ApiClient
from exam_client.api.realtime import AttemptChannel, RealtimeChannel, Subscription

__all__ = ["ApiClient", "AttemptChannel", "RealtimeChannel", "Subscription"]
