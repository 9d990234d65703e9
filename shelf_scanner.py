"""Shelf Scanner

Goal: scan or type a SKU / EAN and see (and edit) its shelf locations, backed by a
`;`-delimited master CSV file.

This module provides:
  * FastAPI app exposing scan, search, bulk search, update, upload and download routes
  * Conversion of store failures into structured JSON results
  * CLI for importing CSV files, deduplicating, counting and looking up codes

Dependencies (baseline):
  pip install fastapi uvicorn[standard] pydantic python-multipart pyyaml

Run dev server:
  uvicorn shelf_scanner:app --reload

Example requests (curl):
  curl -X POST -H "Content-Type: application/json" -d '{"code": "ABC1"}' http://localhost:8000/scan
  curl -X POST -F "csv=@products.csv" http://localhost:8000/upload-csv

Master CSV default: uploads/masterdatabase.csv (see settings.yml)
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

import codec
import ingest
import store
from codec import MASTER_COLUMNS, Record
from config import SETTINGS
from errors import InventoryStoreError, MalformedInputError
from matcher import CodeType

# --------------------------------------------------
# LOGGING
# --------------------------------------------------
logger = logging.getLogger("shelf_scanner")
if not logger.handlers:
    logging.basicConfig(level=SETTINGS.log_level, format="[%(levelname)s] %(message)s")

os.makedirs(SETTINGS.data_dir, exist_ok=True)

# --------------------------------------------------
# RESOURCES
# --------------------------------------------------
def get_master() -> store.FileResource:
    return store.FileResource(SETTINGS.master_path)


def get_bulk_results() -> store.FileResource:
    return store.FileResource(SETTINGS.bulk_results_path)


def master_row(record: Record) -> Dict[str, str]:
    return dict(zip(MASTER_COLUMNS, record.to_row()))

# --------------------------------------------------
# REQUEST / RESPONSE MODELS
# --------------------------------------------------
class ScanRequest(BaseModel):
    code: Optional[str] = None


class ScanResponse(BaseModel):
    found: bool
    rows: List[Dict[str, str]] = Field(default_factory=list)
    message: Optional[str] = None


class UpdateRequest(BaseModel):
    code: Optional[str] = None
    updates: Optional[Dict[str, Any]] = None


class BulkSearchRequest(BaseModel):
    codes: List[str] = Field(default_factory=list)


async def call_store(func: Callable, *args, **kwargs):
    """Run a blocking store call off the event loop."""
    return await run_in_threadpool(func, *args, **kwargs)

# --------------------------------------------------
# FASTAPI APP
# --------------------------------------------------
app = FastAPI(title="Shelf Scanner", version="0.3.0")


@app.get("/health")
def health(master: store.FileResource = Depends(get_master)):
    return {"status": "ok", "master_path": master.describe()}


@app.post("/scan", response_model=ScanResponse)
async def scan(req: ScanRequest, master: store.FileResource = Depends(get_master)):
    code = (req.code or "").strip()
    if not code:
        return JSONResponse(status_code=400, content={"found": False, "rows": []})
    try:
        matches = await call_store(store.find_by_code, master, code)
    except InventoryStoreError as e:
        logger.exception("Scan failed for %s", code)
        return JSONResponse(status_code=500, content={"found": False, "rows": [], "message": str(e)})
    return ScanResponse(found=bool(matches), rows=[r.to_api_dict() for r in matches])


@app.get("/search-master")
async def search_master(type: Optional[str] = None, query: Optional[str] = None,
                        master: store.FileResource = Depends(get_master)):
    if not type or not query:
        return {"data": []}
    if type.upper() not in (CodeType.SKU.value, CodeType.EAN.value):
        raise HTTPException(status_code=400, detail="type must be SKU or EAN")
    if not master.exists():
        return {"data": [], "message": "Master database not found"}
    try:
        matches = await call_store(store.search_by_type, master, type, query)
    except InventoryStoreError:
        logger.exception("Reading master CSV failed")
        return JSONResponse(status_code=500, content={"data": [], "message": "Error reading master database"})
    return {"data": [master_row(r) for r in matches]}


@app.post("/bulk-search")
async def bulk_search(req: BulkSearchRequest,
                      master: store.FileResource = Depends(get_master),
                      results: store.FileResource = Depends(get_bulk_results)):
    codes = [c.strip() for c in req.codes if c and c.strip()]
    if not codes:
        raise HTTPException(status_code=400, detail="No codes supplied")
    try:
        matches = await call_store(store.bulk_lookup, master, results, codes)
    except InventoryStoreError as e:
        logger.exception("Bulk search failed")
        return JSONResponse(status_code=500, content={"count": 0, "rows": [], "message": str(e)})
    return {"count": len(matches), "rows": [master_row(r) for r in matches]}


@app.post("/update-master")
async def update_master(req: UpdateRequest, master: store.FileResource = Depends(get_master)):
    if not req.code or not req.updates:
        return {"success": False, "message": "code and updates are required"}
    try:
        result = await call_store(store.update, master, req.code, req.updates)
    except ValueError as e:
        return {"success": False, "message": str(e)}
    except InventoryStoreError as e:
        logger.exception("Update failed for %s", req.code)
        return {"success": False, "message": str(e)}
    if not result.updated:
        return {"success": False, "message": "No rows matched"}
    return {"success": True, "message": f"Updated {result.matched} record(s)"}


@app.post("/upload-csv")
async def upload_csv(csv_file: Optional[UploadFile] = File(None, alias="csv"),
                     master: store.FileResource = Depends(get_master)):
    if csv_file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")
    filename = csv_file.filename or ""
    if csv_file.content_type != "text/csv" and not filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Only CSV files are allowed")
    data = await csv_file.read()
    try:
        result = await call_store(ingest.ingest, master, data, SETTINGS.upload_align)
    except MalformedInputError as e:
        logger.warning("Rejected upload %s: %s", filename, e)
        raise HTTPException(status_code=422, detail=f"Error processing CSV: {e}")
    except InventoryStoreError as e:
        logger.exception("CSV ingest failed")
        return JSONResponse(status_code=500, content={"message": f"Error processing CSV: {e}"})
    return {
        "message": "File uploaded!",
        "filename": filename,
        "records_appended": result.records_appended,
        "duplicates_removed": result.duplicates_removed,
    }


@app.get("/total-records")
async def total_records(master: store.FileResource = Depends(get_master)):
    try:
        total = await call_store(store.count, master)
    except InventoryStoreError:
        logger.exception("Counting records failed")
        return JSONResponse(status_code=500, content={"total": 0})
    return {"total": total}


def _csv_download(data: Optional[bytes], filename: str, missing: str) -> Response:
    if data is None:
        raise HTTPException(status_code=404, detail=missing)
    return Response(
        content=data,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/download-master")
async def download_master(master: store.FileResource = Depends(get_master)):
    try:
        data = await call_store(store.export_master, master)
    except InventoryStoreError:
        logger.exception("Reading master CSV for download failed")
        raise HTTPException(status_code=500, detail="Error downloading file.")
    return _csv_download(data, "masterdatabase.csv", "Master database not found.")


@app.get("/download-bulk-results")
async def download_bulk_results(results: store.FileResource = Depends(get_bulk_results)):
    try:
        data = await call_store(store.export_bulk_results, results)
    except InventoryStoreError:
        logger.exception("Reading bulk results failed")
        raise HTTPException(status_code=500, detail="Error downloading file.")
    return _csv_download(data, "bulk_results.csv", "No bulk search results yet.")

# --------------------------------------------------
# CLI ENTRY POINT
# --------------------------------------------------
def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Shelf scanner master CSV tools")
    parser.add_argument("--csv", default=SETTINGS.master_path, help="Master CSV path")
    sub = parser.add_subparsers(dest="command", required=True)

    p_lookup = sub.add_parser("lookup", help="Print records matching a SKU or EAN")
    p_lookup.add_argument("code")

    p_import = sub.add_parser("import", help="Append CSV files to the master and deduplicate")
    p_import.add_argument("files", nargs="+", help="`;`-delimited CSV file paths")
    p_import.add_argument("--align", choices=[ingest.ALIGN_POSITION, ingest.ALIGN_NAME],
                          default=SETTINGS.upload_align,
                          help="Map uploaded columns by position (legacy) or by header name")

    sub.add_parser("dedupe", help="Remove duplicate SKUs / EANs from the master")
    sub.add_parser("count", help="Print the number of records in the master")

    p_serve = sub.add_parser("serve", help="Run the HTTP server")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    master = store.FileResource(args.csv)

    try:
        if args.command == "lookup":
            matches = store.find_by_code(master, args.code)
            if not matches:
                logger.info("No record found for %s", args.code)
                return 1
            for record in matches:
                print(codec.DELIMITER.join(record.to_row()))
        elif args.command == "import":
            for path in args.files:
                with open(path, "rb") as f:
                    data = f.read()
                logger.info(f"Processing {path} .")
                result = ingest.ingest(master, data, args.align)
                logger.info("%s: appended %d, removed %d duplicate(s), total %d",
                            path, result.records_appended, result.duplicates_removed, result.total)
        elif args.command == "dedupe":
            result = ingest.deduplicate(master)
            logger.info("Kept %d record(s), removed %d", result.kept, result.removed)
        elif args.command == "count":
            print(store.count(master))
        elif args.command == "serve":
            import uvicorn
            uvicorn.run(app, host=args.host, port=args.port)
    except InventoryStoreError as e:
        logger.error("%s", e)
        return 2
    logger.info(f"Done. Master at {master.describe()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
