"""Key layout of the auction state in Redis."""

CURRENT_ITEM_KEY = "current-item"
ALL_ITEMS_KEY = "all-items"
TOTAL_RAISED_KEY = "total-raised"
AUCTION_UPDATES_CHANNEL = "auction-updates"


def item_key(item_id: str) -> str:
    return item_id


def bids_key(item_id: str) -> str:
    return f"bids-{item_id}"
