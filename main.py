#!/usr/bin/env python3
"""
slider-omni

A FastAPI application that turns a topic into a self-contained HTML slide
presentation using a configured LLM provider, paid for with monthly credits.

To start the server:
    python main.py
"""

import sys
from pathlib import Path

# add the project root to python path so the slider_omni package imports
sys.path.insert(0, str(Path(__file__).parent))

# start the fastapi server when this file is run
if __name__ == "__main__":
    import uvicorn
    # run the api app on port 8000 with auto-reload for development
    uvicorn.run("slider_omni.backend.api:app", host="0.0.0.0", port=8000, reload=True)
