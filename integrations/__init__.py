"""
GATHERLY - External Integrations

Subsystem handles for services the server talks to over the network:
- Email: SMTP relay
- Messaging: Redis Streams notification queue
- Object storage: S3-compatible bucket store
"""
from integrations.mailer import EmailHandle
from integrations.messaging import MessagingHandle, QueueMessage
from integrations.object_storage import ObjectStorageHandle

__all__ = [
    "EmailHandle",
    "MessagingHandle",
    "QueueMessage",
    "ObjectStorageHandle",
]
