"""Users API layer: routes and authentication dependencies."""
