SYMBOL_REPLACEMENTS = {
    "₮": "T",    # Tether
    "Ξ": "ETH",  # ETH symbol
    "Ƀ": "BTC",  # Bitcoin symbol
}
