"""Services for Persona Engine."""
