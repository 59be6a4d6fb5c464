import uvicorn

if __name__ == "__main__":
    print("Starting Artifact Report API Server...")
    print("Docs available at: http://localhost:8000/docs")

    uvicorn.run(
        "scriptrecon.api.server:app",
        host="127.0.0.1",
        port=8000,
        reload=False
    )
