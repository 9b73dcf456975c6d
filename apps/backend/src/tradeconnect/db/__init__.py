"""Persistence primitives shared by every TradeConnect domain package."""
