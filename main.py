from fastapi import FastAPI, Body
import os
import logging
from datetime import datetime
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from spectra_process import ConversionRequest, SpectraProcessor


# Create logs directory if it doesn't exist
log_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs")
os.makedirs(log_dir, exist_ok=True)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Add file handler to write logs to file
log_file_path = os.path.join(log_dir, f"app_{datetime.now().strftime('%Y%m%d')}.log")
file_handler = logging.FileHandler(log_file_path)
file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
logger.addHandler(file_handler)


# Initialize FastAPI app with metadata
app = FastAPI(
    title="UV-Vis Spectra Processor API",
    description="API for converting spectrophotometer exports into per-wavelength spectra tables",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# API Endpoints
@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok"}


@app.post(
    "/process",
    tags=["Spectra Processing"]
)
def process_spectra(request: ConversionRequest = Body(...)):
    """
    Convert an instrument export into a Processed_Spectra workbook.

    The workbook is written to ``output_folder`` (or next to the input when
    omitted) under a timestamped name. Pho_Scanning/Fl_Scanning sheets and
    Absorbance/Fluorescence sheets are converted, any other sheet is skipped.

    Returns:
        dict: JSON response with:
            - success / status_code / status
            - data: output_path and a summary of every converted sheet
            - error: message to show to the user when the conversion failed
    """
    logger.info(f"Conversion requested for {request.input_path}")
    result = SpectraProcessor.process_file(request)

    if not result.is_success():
        logger.warning(f"Conversion failed: {result.error}")
        return JSONResponse(status_code=result.status_code.value, content=result.to_dict())

    logger.info(f"Processing has completed: {result.data.output_path}")
    return result.to_dict()


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Spectra Processor API in development mode.")
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
