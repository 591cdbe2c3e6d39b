"""
Tests for the main module.
"""


def test_read_root(client):
    """Test the root endpoint returns the expected response."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "CVStream API"}


def test_lifespan_wires_analysis_services(client):
    """The lifespan parks the long-lived engine services on app state."""
    state = client.app.state
    assert state.checkpoint_store is not None
    assert state.provider_client is not None


def test_docs_mounted_under_api_prefix(client):
    response = client.get("/api/v1/docs")
    assert response.status_code == 200
