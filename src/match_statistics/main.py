import uvicorn

from fastapi import FastAPI
from match_statistics.api_routes import statistics_route

app = FastAPI(title="Match Statistics")

app.include_router(statistics_route.router)

if __name__ == "__main__":
    uvicorn.run(
        "match_statistics.main:app",
        host="0.0.0.0",
        port=8001,
        reload=True
    )
