"""Remote provider adapters"""

from .openrouter import ChatClient, RetryPolicy, call_with_retry, create_client

__all__ = ['ChatClient', 'RetryPolicy', 'call_with_retry', 'create_client']
