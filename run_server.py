import uvicorn

if __name__ == "__main__":
    print("Starting Pack Studio API Server...")
    print("Docs available at: http://localhost:8000/docs")

    uvicorn.run(
        "packstudio.api.server:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
