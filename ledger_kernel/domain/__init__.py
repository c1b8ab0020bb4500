"""Pure domain layer: amounts, partial updates, clock."""
