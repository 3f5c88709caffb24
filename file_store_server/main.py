import mimetypes
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Union
from urllib.parse import quote

import uvicorn
from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles

import config
from logger_config import setup_logger, structured_log
from models import FileDetails, HealthResponse, MessageResponse, UploadedFile, UploadResponse
from monitor import Monitor
from app.services.retention import RetentionSweeper
from app.services.storage_manager import (
    FileNotFoundInStorage,
    InvalidFilename,
    StorageError,
    StorageManager,
    UploadTooLarge,
)

# Logger setup
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create and initialize storage manager
    app.state.storage_manager = StorageManager(
        Path(config.UPLOAD_DIR),
        Path(config.TEMP_DIR),
        max_upload_size=config.MAX_UPLOAD_SIZE,
        logger=logger,
    )
    await app.state.storage_manager.initialize()

    monitor = Monitor(
        "retention sweep",
        failure_threshold=config.SWEEP_FAILURE_THRESHOLD,
        window_seconds=config.SWEEP_FAILURE_WINDOW_SECONDS,
        logger=logger,
    )
    app.state.sweeper = RetentionSweeper(
        app.state.storage_manager,
        retention_seconds=config.RETENTION_SECONDS,
        interval_seconds=config.SWEEP_INTERVAL_SECONDS,
        monitor=monitor,
        logger=logger,
    )
    app.state.sweeper.start()

    # Static assets are served from the root, behind the API routes
    static_route = None
    if Path(config.STATIC_DIR).is_dir():
        app.mount("/", StaticFiles(directory=config.STATIC_DIR, html=True), name="static")
        static_route = app.router.routes[-1]

    yield

    if static_route is not None:
        app.router.routes.remove(static_route)
    await app.state.sweeper.stop()


# Create FastAPI app with lifespan
app = FastAPI(title="Flare File Store", lifespan=lifespan)


def http_error_for(e: StorageError, filename: str = "") -> HTTPException:
    """Translate a storage exception into the HTTP error returned to the client."""
    if isinstance(e, InvalidFilename):
        return HTTPException(status_code=400, detail="Invalid filename.")
    if isinstance(e, FileNotFoundInStorage):
        return HTTPException(status_code=404, detail="File not found.")
    if isinstance(e, UploadTooLarge):
        return HTTPException(
            status_code=413,
            detail=f"File exceeds maximum allowed size ({e.limit} bytes)."
        )
    logger.error(f"Storage error for {filename or 'upload directory'}: {e}", exc_info=True)
    return HTTPException(status_code=500, detail="Storage error.")



def content_disposition(filename: str) -> str:
    """Build an attachment header, RFC 5987 encoding names that are not plain ASCII."""
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'

@app.post("/upload", response_model=UploadResponse)
async def upload_file(request: Request, file: Union[UploadFile, str, None] = File(None)):
    """Store an uploaded file under a server-assigned name."""
    storage_manager: StorageManager = request.app.state.storage_manager

    # A plain form value under "file" is not an upload either
    if file is None or isinstance(file, str):
        raise HTTPException(status_code=400, detail="No file uploaded.")

    logger.info(f"Receiving upload request for {file.filename!r}")

    try:
        filename, size = await storage_manager.save_upload(file)
    except UploadTooLarge as e:
        logger.info(structured_log(
            "Upload rejected",
            event="upload_rejected",
            originalname=file.filename,
            size=e.size,
        ))
        raise http_error_for(e) from e
    except StorageError as e:
        logger.error(f"Error uploading {file.filename!r}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Unable to store file.") from e
    finally:
        await file.close()

    logger.info(structured_log(
        "File uploaded",
        event="file_uploaded",
        filename=filename,
        originalname=file.filename,
        mimetype=file.content_type,
        size=size,
    ))
    return UploadResponse(
        message="File uploaded successfully!",
        file=UploadedFile(
            fieldname="file",
            originalname=file.filename,
            mimetype=file.content_type,
            filename=filename,
            size=size,
        ),
    )


@app.get("/files", response_model=List[str])
async def list_files(request: Request):
    """List the names of all stored files."""
    storage_manager: StorageManager = request.app.state.storage_manager

    try:
        files = await storage_manager.list_files()
    except StorageError as e:
        logger.error(f"Error reading upload directory: {e}")
        raise HTTPException(status_code=500, detail="Unable to list files.") from e

    logger.debug(f"Files in upload directory: {len(files)}")
    return files


@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    storage_manager: StorageManager = request.app.state.storage_manager
    sweeper: RetentionSweeper = request.app.state.sweeper

    sweep_stats = sweeper.monitor.stats
    healthy = storage_manager.data_dir.is_dir() and sweep_stats['consecutive_failures'] == 0
    return HealthResponse(
        status="ok" if healthy else "degraded",
        storage_dir=str(storage_manager.data_dir),
        sweep=sweep_stats,
    )


@app.get("/files/{filename}/details", response_model=FileDetails)
async def get_file_details(filename: str, request: Request):
    """Return size and timestamps of a stored file."""
    storage_manager: StorageManager = request.app.state.storage_manager
    logger.info(f"File details requested: {filename}")

    try:
        return await storage_manager.get_details(filename)
    except StorageError as e:
        raise http_error_for(e, filename) from e


@app.get("/files/{filename}")
async def download_file(filename: str, request: Request):
    """Stream a stored file back as an attachment."""
    storage_manager: StorageManager = request.app.state.storage_manager
    logger.info(f"File download requested: {filename}")

    try:
        content = await storage_manager.open_for_download(filename)
    except StorageError as e:
        raise http_error_for(e, filename) from e

    content_type, _ = mimetypes.guess_type(filename)
    return StreamingResponse(
        content,
        media_type=content_type or "application/octet-stream",
        headers={"content-disposition": content_disposition(filename)}
    )


@app.delete("/files/{filename}", response_model=MessageResponse)
async def delete_file(filename: str, request: Request):
    """Delete a stored file."""
    storage_manager: StorageManager = request.app.state.storage_manager
    logger.info(f"File deletion requested: {filename}")

    try:
        await storage_manager.delete_file(filename)
    except StorageError as e:
        raise http_error_for(e, filename) from e

    return MessageResponse(message="File deleted successfully!")


def run():
    logger.info("Starting Flare file store...")
    logger.info(f"Upload directory: {config.UPLOAD_DIR}")
    logger.info(f"Retention: {config.RETENTION_SECONDS}s, sweep interval: {config.SWEEP_INTERVAL_SECONDS}s")
    if config.MAX_UPLOAD_SIZE is None:
        logger.info("Maximum upload size: unbounded")
    else:
        logger.info(f"Maximum upload size: {config.MAX_UPLOAD_SIZE / (1024*1024):.2f} MB")
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
