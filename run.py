import os
import sys

# Add src directory to Python path
src_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "src")
sys.path.insert(0, src_path)

if __name__ == "__main__":
    import uvicorn
    from berrymx.core.settings import Settings

    settings = Settings()
    uvicorn.run(
        "berrymx.api.app:create_app",  # 使用工厂函数
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info"
    )
