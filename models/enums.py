from enum import Enum

class SendStatus(str, Enum):
    """Overall result of the send pipeline"""
    DELIVERED = "delivered"  # all four writes landed
    PARTIAL = "partial"  # sender copy exists, some other write failed
    FAILED = "failed"  # sender copy could not be written

class WriteTarget(str, Enum):
    """The four independent writes of a send, in execution order"""
    SENDER_MESSAGE = "sender_message"
    SENDER_RECENT = "sender_recent"
    RECIPIENT_MESSAGE = "recipient_message"
    RECIPIENT_RECENT = "recipient_recent"

class ChangeKind(str, Enum):
    """Which feed a change event belongs to"""
    MESSAGE = "message"
    RECENT = "recent"

class ChangeOp(str, Enum):
    """Change notification operations"""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
