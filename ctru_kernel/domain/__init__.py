"""Pure domain layer: classification, DTOs, clock, currency."""
