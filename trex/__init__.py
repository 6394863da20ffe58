"""Microservice runtime: environments, health check and metrics servers, logging and metrics middleware, and cloning."""

__version__ = "0.1.0"