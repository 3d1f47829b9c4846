"""Pure signal logic: models, indicators, detectors, fusion, scoring and filtering.

Nothing in this package touches the network, the database or Redis. The
service layer (tradewise/) feeds it candles and persists what comes out.
"""
