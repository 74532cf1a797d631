# fieldops/__main__.py
# Run the API with uvicorn:  python -m fieldops
import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "fieldops.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
