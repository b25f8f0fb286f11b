"""Service layer: stateless singletons shared by middleware and controllers."""
