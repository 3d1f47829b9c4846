"""TradeWise service: schedules the signal pipeline and copy-trading monitor, exposes the REST API."""
