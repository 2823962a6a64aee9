# FastAPI server for the OpenMTP support bot and the dataset annotation tools
# uvicorn server:app
# Avoid using --reload flag, the RAG system and agent would be rebuilt on every change.

from fastapi import FastAPI, File, UploadFile, Request, Query
from fastapi.responses import JSONResponse, StreamingResponse, Response
from fastapi.middleware.cors import CORSMiddleware

import os
import json
from typing import Any, Optional
from urllib.parse import quote
from pydantic import BaseModel
from contextlib import asynccontextmanager

# support bot imports:
from support_bot.core.database import VectorDB              # Class
from support_bot.core.history import HistoryStore           # Class
from support_bot.chains.rag import SupportRAG               # Class
from support_bot.chains.agent import SupportAgent           # Class
from support_bot.chains.agent import extract_retrieved_context  # Function
from support_bot import config                              # Constants

# Helper Modules:
import files
import storage
import cleaner
import datasets

import logger
log = logger.get_logger("support_server")


# ------------------------------------------------------------------------------
# Constants:
# ------------------------------------------------------------------------------

CORS_ORIGINS = [
    origin.strip() for origin in
    os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]


# ------------------------------------------------------------------------------
# FastAPI Startup:
# ------------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Define the lifespan context manager for startup/shutdown"""

    # [ Startup ]
    log.info("[LifeSpan] Starting the server components.")

    # The RAG system and the agent are built on first use
    app.state.rag_system = None
    app.state.agent = None
    app.state.history_store = HistoryStore()

    log.info(f"[LifeSpan] Annotation storage at: {storage.DB_PATH}")

    # [ Lifespan ]
    yield

    # [ Shutdown ]
    log.info("[LifeSpan] Shutting down support server...")


# Make one FastAPI app instance with the lifespan context manager
app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"]
)


def get_rag_system(app: FastAPI) -> SupportRAG:
    """The LangChain RAG system, created once on first use."""

    if getattr(app.state, "rag_system", None) is None:
        log.info("Initializing the LangChain RAG system...")
        app.state.rag_system = SupportRAG(
            VectorDB(
                collection_name=config.LANGCHAIN_COLLECTION_NAME,
                verify_connection=config.VERIFY_EMB_CONNECTION,
            )
        )
    return app.state.rag_system


def get_agent(app: FastAPI) -> Optional[SupportAgent]:
    """The support agent, created once on first use. None if it can't be built."""

    if getattr(app.state, "agent", None) is None:
        history_store = getattr(app.state, "history_store", None)
        if history_store is None:
            history_store = app.state.history_store = HistoryStore()

        try:
            log.info("Initializing the OpenMTP agent...")
            app.state.agent = SupportAgent(
                VectorDB(
                    collection_name=config.AGENT_COLLECTION_NAME,
                    verify_connection=config.VERIFY_EMB_CONNECTION,
                ),
                history_store=history_store,
            )
        except Exception as e:
            log.exception(f"Failed to initialize the OpenMTP agent: {e}")
            return None

    return app.state.agent


# ------------------------------------------------------------------------------
# Basic API Endpoints:
# ------------------------------------------------------------------------------

@app.get("/")
async def root():
    """Root endpoint to check if the server is running."""
    return {"message": "OpenMTP support server is running!"}


# ------------------------------------------------------------------------------
# LangChain RAG Endpoints:
# ------------------------------------------------------------------------------

class ChatRequest(BaseModel):
    question: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None


@app.post("/api/chat-langchain")
async def chat_langchain(request: Request, chat_request: ChatRequest):
    """Answer a question with the LangChain RAG chain.
    - Post request expects JSON `{"question": "", "user_id"?: "", "session_id"?: ""}` structure.
    - Return JSON with `{"answer": "", "logs": {question, retrieved_count, retrieved_chunks, trace_id}}` structure.
    """

    question = (chat_request.question or "").strip()
    if not question:
        return JSONResponse(status_code=400, content={"error": "Question is required"})

    user_id = chat_request.user_id or config.DEFAULT_USER_ID
    session_id = chat_request.session_id or config.DEFAULT_SESSION_ID

    try:
        log.info(f"/api/chat-langchain Processing question: '{question[:80]}' for '{user_id}'")
        rag = get_rag_system(request.app)
        result = await rag.agenerate_response(question, user_id=user_id, session_id=session_id)

        log.info(f"/api/chat-langchain Response generated. Retrieved: {result['logs']['retrieved_count']} docs")
        return result

    except Exception as e:
        log.exception(f"/api/chat-langchain Error {e} for '{user_id}'")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to process question", "details": str(e)}
        )


@app.post("/api/chat-langchain/stream")
async def chat_langchain_stream(request: Request, chat_request: ChatRequest):
    """Stream the RAG answer.
    - Post request expects JSON `{"question": "", "user_id"?: "", "session_id"?: ""}` structure.
    - Return NDJSON with types "metadata", "context", "content", or "error".
    """

    question = (chat_request.question or "").strip()
    if not question:
        return JSONResponse(status_code=400, content={"error": "Question is required"})

    user_id = chat_request.user_id or config.DEFAULT_USER_ID
    session_id = chat_request.session_id or config.DEFAULT_SESSION_ID

    async def token_streamer():
        try:
            log.info(f"/api/chat-langchain/stream Response requested by '{user_id}'")
            rag = get_rag_system(request.app)

            async for kind, data in rag.stream_response(question, user_id=user_id, session_id=session_id):
                if await request.is_disconnected():
                    log.warning(f"/api/chat-langchain/stream client disconnected for '{user_id}'")
                    break

                # NDJSON (newline-delimited JSON), the client merges the content lines
                yield json.dumps({"type": kind, "data": data}) + "\n"

            log.info(f"/api/chat-langchain/stream Streaming completed for '{user_id}'")

        except Exception as e:
            log.exception(f"/api/chat-langchain/stream Error {e} for '{user_id}'")
            yield json.dumps({"type": "error", "data": str(e)}) + "\n"

    return StreamingResponse(token_streamer(), media_type="application/x-ndjson")


@app.get("/api/chat-langchain")
async def chat_langchain_status():
    return {
        "status": "OpenMTP AI API with LangChain + tracing",
        "endpoints": {"POST": "/api/chat-langchain", "STREAM": "/api/chat-langchain/stream"},
        "features": [
            "LangChain RAG pipeline",
            "PgVector similarity search",
            "LangChain run tracing",
            f"{config.LLM_PROVIDER} {config.LLM_CHAT_MODEL_NAME}",
            "GitHub issues knowledge base",
        ],
    }


# ------------------------------------------------------------------------------
# Agent Endpoints:
# ------------------------------------------------------------------------------

class AgentChatRequest(BaseModel):
    question: Optional[str] = None
    thread_id: Optional[str] = None
    resource_id: Optional[str] = None


@app.post("/api/chat-mastra")
async def chat_agent(request: Request, chat_request: AgentChatRequest):
    """Answer a question with the tool-calling support agent.
    - Post request expects JSON `{"question": "", "thread_id"?: "", "resource_id"?: ""}` structure.
    - Return JSON with `{"answer": "", "logs": {question, retrieved_context, timestamp}}` structure.
    """

    question = (chat_request.question or "").strip()
    if not question:
        return JSONResponse(status_code=400, content={"error": "Question is required"})

    thread_id = chat_request.thread_id or config.DEFAULT_THREAD_ID
    resource_id = chat_request.resource_id or config.DEFAULT_USER_ID

    try:
        agent = get_agent(request.app)
        if agent is None:
            return JSONResponse(status_code=500, content={"error": "OpenMTP agent not found"})

        log.info(f"/api/chat-mastra Processing question: '{question[:80]}' for '{resource_id}:{thread_id}'")
        result = await agent.agenerate(question, thread_id=thread_id, resource_id=resource_id)

        return {
            "answer": result["text"],
            "logs": {
                "question": question,
                "retrieved_context": extract_retrieved_context(result["tool_results"]),
                "timestamp": storage.timestamp(),
            },
        }

    except Exception as e:
        log.exception(f"/api/chat-mastra Error {e} for '{resource_id}'")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to process question", "details": str(e)}
        )


@app.get("/api/chat-mastra")
async def chat_agent_status():
    return {
        "status": "OpenMTP AI API with Auto-Tracing",
        "endpoints": {"POST": "/api/chat-mastra"},
    }


# ------------------------------------------------------------------------------
# Dataset Cleaner Endpoints:
# ------------------------------------------------------------------------------

class CreateProjectRequest(BaseModel):
    sourcePath: Optional[str] = None
    outputPath: Optional[str] = None
    projectName: Optional[str] = None


@app.post("/api/dataset-cleaner/create-project")
async def create_project(project_request: CreateProjectRequest):
    """Copy the JSON files of a source directory into an output directory and save the project.
    - Post request expects JSON `{"sourcePath": "", "outputPath": "", "projectName": ""}` structure.
    - Return JSON with `{success, message, fileIndex, filePathMapping, copiedFiles, totalFiles, projectId}`.
    """

    source_path = (project_request.sourcePath or "").strip()
    output_path = (project_request.outputPath or "").strip()
    project_name = (project_request.projectName or "").strip()

    if not source_path or not output_path or not project_name:
        return JSONResponse(status_code=400, content={"error": "Missing required fields"})

    try:
        log.info(f"/api/dataset-cleaner/create-project '{project_name}' from '{source_path}' to '{output_path}'")
        status, result = files.copy_json_files(source_path, output_path)
        if not status:
            return JSONResponse(status_code=400, content={"error": result})

        project = cleaner.create_project(
            source_path, output_path, result["fileIndex"], result["filePathMapping"], name=project_name
        )
        return {
            "success": True,
            "message": f"Successfully copied {result['copiedFiles']} files",
            **result,
            "projectId": project["id"],
        }

    except Exception as e:
        log.exception(f"/api/dataset-cleaner/create-project Error {e}")
        return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(e)})


@app.get("/api/dataset-cleaner/files")
async def read_project_file(outputPath: Optional[str] = Query(None), filename: Optional[str] = Query(None)):
    """Read one JSON file of a project.
    - Get request expects `outputPath` and `filename` query parameters.
    - Return JSON with `{"success": true, "filename": "", "data": {...}}` structure.
    """

    if not outputPath or not filename:
        return JSONResponse(status_code=400, content={"error": "Missing outputPath or filename"})

    try:
        file_path = files.resolve_file_path(outputPath, filename)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    if not os.path.isfile(file_path):
        return JSONResponse(status_code=404, content={"error": "File does not exist"})

    try:
        data = files.read_json_file(file_path)
        return {"success": True, "filename": filename, "data": data}

    except Exception as e:
        log.exception(f"/api/dataset-cleaner/files Error reading '{file_path}': {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to read file", "details": str(e)})


class WriteFileRequest(BaseModel):
    outputPath: Optional[str] = None
    filename: Optional[str] = None
    data: Any = None
    projectId: Optional[str] = None


@app.put("/api/dataset-cleaner/files")
async def write_project_file(write_request: WriteFileRequest):
    """Write one JSON file of a project.
    - Put request expects JSON `{"outputPath": "", "filename": "", "data": {...}, "projectId"?: ""}` structure.
    - Return JSON with `{"success": true, "message": "", "filePath": ""}` structure.
    """

    if not write_request.outputPath or not write_request.filename or "data" not in write_request.model_fields_set:
        return JSONResponse(status_code=400, content={"error": "Missing required fields"})

    try:
        file_path = files.resolve_file_path(write_request.outputPath, write_request.filename)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    status, message = files.write_json_file(file_path, write_request.data)
    if not status:
        return JSONResponse(status_code=500, content={"error": "Failed to write file", "details": message})

    if write_request.projectId:
        try:
            cleaner.mark_file_modified(write_request.projectId, write_request.filename)
        except cleaner.ProjectNotFoundError:
            log.warning(f"/api/dataset-cleaner/files Unknown project '{write_request.projectId}', file saved anyway")

    return {
        "success": True,
        "message": f"File {write_request.filename} saved successfully",
        "filePath": file_path,
    }


@app.get("/api/dataset-cleaner/projects")
async def list_projects():
    return {"projects": cleaner.list_projects()}


@app.get("/api/dataset-cleaner/projects/{project_id}")
async def get_project(project_id: str):
    try:
        return cleaner.get_project(project_id)
    except cleaner.ProjectNotFoundError:
        return JSONResponse(status_code=404, content={"error": "Project not found"})


@app.delete("/api/dataset-cleaner/projects/{project_id}")
async def delete_project(project_id: str):
    log.info(f"/api/dataset-cleaner/projects Delete requested for '{project_id}'")
    if cleaner.delete_project(project_id):
        return {"success": True}
    return JSONResponse(status_code=404, content={"error": "Project not found"})


@app.get("/api/dataset-cleaner/projects/{project_id}/files")
async def list_project_files(project_id: str, status: cleaner.T_FILE_STATUS = Query("all"),
                             search: Optional[str] = Query(None)):
    """Files of a project filtered by completion, plus the position of an issue number when searched.
    - Return JSON with `{"files": [...], "total": n, "foundIndex"?: i}` structure.
    """

    try:
        project = cleaner.get_project(project_id)
    except cleaner.ProjectNotFoundError:
        return JSONResponse(status_code=404, content={"error": "Project not found"})

    file_list = cleaner.filter_files(project, status)
    response: dict[str, Any] = {"files": file_list, "total": len(file_list)}

    if search is not None:
        found = cleaner.find_issue_file(file_list, search)
        if found == -1:
            return JSONResponse(
                status_code=404,
                content={"error": f"Issue {search.strip()} not found in current filtered files. "
                                  f"Total files: {len(file_list)}"}
            )
        response["foundIndex"] = found

    return response


@app.post("/api/dataset-cleaner/projects/{project_id}/files/{filename}/toggle-complete")
async def toggle_file_completion(project_id: str, filename: str):
    try:
        completed = cleaner.toggle_file_completion(project_id, filename)
        return {"filename": filename, "completed": completed}
    except cleaner.ProjectNotFoundError:
        return JSONResponse(status_code=404, content={"error": "Project not found"})


class FieldValueRequest(BaseModel):
    filename: str
    path: str
    value: Any = None


@app.put("/api/dataset-cleaner/projects/{project_id}/field-value")
async def set_project_field_value(project_id: str, field_request: FieldValueRequest):
    """Set one (dotted-path) field of a project file and save it."""

    try:
        project = cleaner.get_project(project_id)
        file_path = files.resolve_file_path(project["outputPath"], field_request.filename)
    except cleaner.ProjectNotFoundError:
        return JSONResponse(status_code=404, content={"error": "Project not found"})
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    if not os.path.isfile(file_path):
        return JSONResponse(status_code=404, content={"error": "File does not exist"})

    try:
        data = cleaner.set_field_value(files.read_json_file(file_path), field_request.path, field_request.value)
    except Exception as e:
        log.exception(f"/api/dataset-cleaner/field-value Error updating '{file_path}': {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to read file", "details": str(e)})

    status, message = files.write_json_file(file_path, data)
    if not status:
        return JSONResponse(status_code=500, content={"error": "Failed to write file", "details": message})

    cleaner.mark_file_modified(project_id, field_request.filename)
    return {"success": True, "data": data}


@app.get("/api/dataset-cleaner/projects/{project_id}/field-configs")
async def get_field_configs(project_id: str):
    return cleaner.get_field_configs(project_id)


class FieldConfigRequest(BaseModel):
    path: str
    config: dict[str, Any] = {}


@app.put("/api/dataset-cleaner/projects/{project_id}/field-configs")
async def update_field_config(project_id: str, config_request: FieldConfigRequest):
    try:
        return cleaner.update_field_config(project_id, config_request.path, config_request.config)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})


class FieldPathRequest(BaseModel):
    path: str


@app.post("/api/dataset-cleaner/projects/{project_id}/field-configs/toggle-edit")
async def toggle_field_edit(project_id: str, path_request: FieldPathRequest):
    return cleaner.toggle_field_edit(project_id, path_request.path)


class DetectFieldRequest(BaseModel):
    key: str
    value: Any = None


@app.post("/api/dataset-cleaner/detect-field-type")
async def detect_field_type(detect_request: DetectFieldRequest):
    return {"type": cleaner.auto_detect_field_type(detect_request.key, detect_request.value)}


# ------------------------------------------------------------------------------
# CSV Dataset Endpoints:
# ------------------------------------------------------------------------------

def dataset_error_response(e: Exception) -> JSONResponse:
    if isinstance(e, datasets.DatasetNotFoundError):
        return JSONResponse(status_code=404, content={"error": "Dataset not found"})
    return JSONResponse(status_code=400, content={"error": str(e)})


@app.get("/api/datasets")
async def list_datasets():
    return {"datasets": datasets.DatasetStore().list()}


@app.post("/api/datasets/upload")
async def upload_dataset(file: UploadFile = File(...)):
    """Create a dataset from an uploaded CSV file.
    - Post request expects a multipart `file`.
    - Return the created dataset with status 201.
    """

    filename = file.filename or "dataset.csv"
    log.info(f"/api/datasets/upload Received file: {filename}")

    try:
        text = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError:
        return JSONResponse(status_code=400, content={"error": "File is not UTF-8 encoded CSV"})

    headers, rows = datasets.parse_csv(text)
    if not headers:
        return JSONResponse(status_code=400, content={"error": "CSV file has no header row"})

    dataset = datasets.create_dataset(datasets.dataset_name_from_file(filename), headers, rows)
    datasets.DatasetStore().add(dataset)
    return JSONResponse(status_code=201, content=dataset)


@app.get("/api/datasets/{dataset_id}")
async def get_dataset(dataset_id: str):
    try:
        return datasets.DatasetStore().get(dataset_id)
    except datasets.DatasetNotFoundError as e:
        return dataset_error_response(e)


@app.delete("/api/datasets/{dataset_id}")
async def delete_dataset(dataset_id: str):
    if datasets.DatasetStore().delete(dataset_id):
        return {"success": True}
    return JSONResponse(status_code=404, content={"error": "Dataset not found"})


class AnnotationRequest(BaseModel):
    text: str


@app.get("/api/datasets/{dataset_id}/annotations/{row_index}")
async def get_annotation(dataset_id: str, row_index: int):
    try:
        dataset = datasets.DatasetStore().get(dataset_id)
        return {"rowIndex": row_index, "annotation": datasets.get_annotation(dataset, row_index)}
    except datasets.DatasetNotFoundError as e:
        return dataset_error_response(e)


@app.put("/api/datasets/{dataset_id}/annotations/{row_index}")
async def set_annotation(dataset_id: str, row_index: int, annotation_request: AnnotationRequest):
    try:
        return datasets.DatasetStore().update(
            dataset_id, lambda d: datasets.set_annotation(d, row_index, annotation_request.text)
        )
    except (datasets.DatasetNotFoundError, IndexError) as e:
        return dataset_error_response(e)


class CustomFieldRequest(BaseModel):
    name: str


@app.post("/api/datasets/{dataset_id}/custom-fields")
async def add_custom_field(dataset_id: str, field_request: CustomFieldRequest):
    try:
        return datasets.DatasetStore().update(
            dataset_id, lambda d: datasets.add_custom_field(d, field_request.name)
        )
    except datasets.DatasetNotFoundError as e:
        return dataset_error_response(e)


class CustomFieldValueRequest(BaseModel):
    value: str


@app.put("/api/datasets/{dataset_id}/custom-fields/{field_name}/{row_index}")
async def update_custom_field(dataset_id: str, field_name: str, row_index: int,
                              value_request: CustomFieldValueRequest):
    try:
        return datasets.DatasetStore().update(
            dataset_id, lambda d: datasets.update_custom_field(d, field_name, row_index, value_request.value)
        )
    except (datasets.DatasetNotFoundError, IndexError) as e:
        return dataset_error_response(e)


class CellRequest(BaseModel):
    rowIndex: int
    columnIndex: int
    value: str


@app.put("/api/datasets/{dataset_id}/cells")
async def update_cell(dataset_id: str, cell_request: CellRequest):
    try:
        return datasets.DatasetStore().update(
            dataset_id,
            lambda d: datasets.update_cell(d, cell_request.rowIndex, cell_request.columnIndex, cell_request.value)
        )
    except (datasets.DatasetNotFoundError, IndexError) as e:
        return dataset_error_response(e)


class JsonFieldRequest(BaseModel):
    rowIndex: int
    fieldName: str
    data: Any = None


@app.post("/api/datasets/{dataset_id}/json-fields")
async def add_json_field(dataset_id: str, field_request: JsonFieldRequest):
    """Store structured data of one row in a (possibly new) column, as used by the advanced annotator."""

    if not field_request.fieldName.strip() or field_request.data is None:
        return JSONResponse(status_code=400, content={"error": "fieldName and data are required"})

    try:
        return datasets.DatasetStore().update(
            dataset_id,
            lambda d: datasets.add_json_field(d, field_request.rowIndex, field_request.fieldName, field_request.data)
        )
    except (datasets.DatasetNotFoundError, IndexError) as e:
        return dataset_error_response(e)


class FilterRule(BaseModel):
    column: str
    operator: str
    value: str = ""
    compareColumn: Optional[str] = None


class FilterRequest(BaseModel):
    filters: list[FilterRule] = []


@app.post("/api/datasets/{dataset_id}/filter")
async def filter_dataset(dataset_id: str, filter_request: FilterRequest):
    """Indices of the rows matching every rule.
    - Return JSON with `{"indices": [...], "count": n, "total": n}` structure.
    """

    try:
        dataset = datasets.DatasetStore().get(dataset_id)
    except datasets.DatasetNotFoundError as e:
        return dataset_error_response(e)

    rules = [rule.model_dump() for rule in filter_request.filters]
    indices = datasets.apply_filters(dataset["rows"], dataset["headers"], rules)
    return {"indices": indices, "count": len(indices), "total": len(dataset["rows"])}


@app.get("/api/datasets/{dataset_id}/export")
async def export_dataset(dataset_id: str):
    try:
        dataset = datasets.DatasetStore().get(dataset_id)
    except datasets.DatasetNotFoundError as e:
        return dataset_error_response(e)

    filename = datasets.export_filename(dataset)
    return Response(
        content=datasets.export_csv(dataset),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


# ------------------------------------------------------------------------------
# Run the FastAPI server:
# ------------------------------------------------------------------------------

if __name__ == "__main__":
    print("WARNING: Starting server without explicit uvicorn command. Not recommended for production use.")
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False
    )
