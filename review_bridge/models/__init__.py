from review_bridge.models.bridge_record import BridgeRecord

__all__ = [
    "BridgeRecord",
]
