"""Usage metering and tiered usage pricing."""
