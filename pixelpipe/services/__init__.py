"""Background services owned by the application lifespan."""
