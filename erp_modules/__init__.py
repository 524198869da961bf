"""Business modules built on the ERP kernel."""
