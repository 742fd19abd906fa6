"""Use cases for the email, SMS and voice channels."""
