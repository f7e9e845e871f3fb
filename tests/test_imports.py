"""
Import Test Script

Tests that all backend dependencies are installed and importable.
Run with: pytest tests/test_imports.py -v
"""


def test_fastapi():
    """FastAPI — Web framework (REST + WebSocket)."""
    import fastapi
    assert hasattr(fastapi, "FastAPI")
    assert hasattr(fastapi, "WebSocket")
    print(f"  fastapi {fastapi.__version__}")


def test_uvicorn():
    """Uvicorn — ASGI server."""
    import uvicorn
    assert hasattr(uvicorn, "run")
    print(f"  uvicorn {uvicorn.__version__}")


def test_pydantic():
    """Pydantic — Data validation."""
    from pydantic import BaseModel
    assert BaseModel is not None
    import pydantic
    print(f"  pydantic {pydantic.__version__}")


def test_supabase():
    """Supabase — Database and storage client."""
    from supabase import create_client
    assert create_client is not None
    import supabase
    print(f"  supabase {supabase.__version__}")


def test_httpx():
    """httpx — Async HTTP client for Supabase Auth and Google Places."""
    import httpx
    assert hasattr(httpx, "AsyncClient")
    print(f"  httpx {httpx.__version__}")


def test_pyjwt():
    """PyJWT — Reads recovery-token claims."""
    import jwt
    assert hasattr(jwt, "decode")
    print(f"  PyJWT {jwt.__version__}")


def test_python_multipart():
    """python-multipart — Form and file uploads."""
    import multipart
    assert multipart is not None
    print("  python-multipart OK")


def test_python_dotenv():
    """python-dotenv — Environment variable management."""
    from dotenv import load_dotenv
    assert load_dotenv is not None
    print("  python-dotenv OK")


def test_pytest_asyncio():
    """pytest-asyncio — Async test support."""
    import pytest_asyncio
    assert pytest_asyncio is not None
    print("  pytest-asyncio OK")
