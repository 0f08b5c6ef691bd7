"""Test suite for openapi_resource_modeler."""
