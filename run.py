import asyncio
import platform

import uvicorn
from volunteer_chat.core.config import settings
from volunteer_chat.core.init_db import init_db

# Windows: SelectorEventLoop instead of ProactorEventLoop
if platform.system() == 'Windows':
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

if __name__ == "__main__":
    asyncio.run(init_db())

    # reload=True ignores host, keep it off for network access
    uvicorn.run(
        "volunteer_chat.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=False
    )
