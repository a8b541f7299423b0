"""Topic names shared by publishers and WebSocket endpoints."""


def livestream_topic(livestream_id: int) -> str:
    return f"livestream:{livestream_id}"


def trades_topic(token_id: int) -> str:
    return f"trades:{token_id}"
