"""Package pricing engine — static fares combined with live hotel rates.

Modules:
    config          Room allocation, money precision, TTL defaults
    errors          InvalidInput / NotFound taxonomy
    types           Value objects: travelers, quotes, breakdowns
    rate_cache      Expiring cache for search results and hotel metadata
    package_store   Loads packages + hotels, normalizes hotel assignments
    live_rates      Cache-through live quotes from the TBO client
    calculator      Base fare, discount, hotel portion, composition
    orchestrator    Public entry points (detailed, estimate, compare)

Pipeline:
    PackageStore.load → validate → LiveRateService (fan-out, per-hotel
    fallback) → PackagePriceCalculator.compose → PricingResult
"""
