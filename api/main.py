from __future__ import annotations

import base64
import binascii
import logging
import os

import uvicorn
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response

from api.schemas import AnalyzeRequest, LandmarkResult, Source, StatusResponse
from pipeline.errors import DecodingError, PipelineBusyError
from pipeline.graph import pipeline
from pipeline.session import LandmarkSession

logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

app = FastAPI(
    title="Landmark Lens",
    version="1.0.0",
    description="Landmark recognition, grounded history and narration with Gemini, orchestrated with LangGraph.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

session = LandmarkSession(graph=pipeline)


def status_response(s: LandmarkSession) -> StatusResponse:
    result = s.result
    return StatusResponse(
        phase=s.status.phase,
        message=s.status.message,
        result=LandmarkResult(
            landmark_name=result.landmark_name,
            history_text=result.history_text,
            sources=[Source(uri=src.uri, title=src.title) for src in result.sources],
            has_audio=result.audio is not None,
        )
        if result
        else None,
        image=s.image.to_data_uri() if s.image else None,
    )


async def run_analysis(raw: bytes, mime_type) -> StatusResponse:
    try:
        await session.submit(raw, mime_type)
    except PipelineBusyError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return status_response(session)


@app.post("/analyze", response_model=StatusResponse)
async def analyze(request: AnalyzeRequest):
    """
    Run the full pipeline on a base64-encoded image.
    """
    try:
        raw = base64.b64decode(request.image_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail="image_base64 is not valid base64.")

    return await run_analysis(raw, request.mime_type)


@app.post("/analyze/upload", response_model=StatusResponse)
async def analyze_upload(file: UploadFile = File(...)):
    """
    Convenience endpoint that accepts an uploaded image file.
    """
    raw = await file.read()
    return await run_analysis(raw, file.content_type)


@app.get("/status", response_model=StatusResponse)
async def status():
    """
    Current pipeline phase, failure message and, once READY, the result.
    """
    return status_response(session)


@app.post("/reset", response_model=StatusResponse)
async def reset():
    """
    Dismiss the current result or error and return to IDLE.
    """
    try:
        session.reset()
    except PipelineBusyError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return status_response(session)


@app.get("/audio")
async def audio():
    """
    Narration for the current result as a playable clip.
    """
    handle = session.audio
    if session.result is None or handle is None:
        raise HTTPException(status_code=404, detail="No narration available.")
    try:
        playable = handle.playable()
    except DecodingError as e:
        raise HTTPException(status_code=422, detail=e.message)
    return Response(content=playable.data, media_type=playable.mime_type)


@app.get("/graph/ascii")
def graph_ascii():
    """
    Return an ASCII representation of the pipeline graph.
    """
    return {"graph": pipeline.get_graph().draw_ascii()}


@app.get("/graph/mermaid")
def graph_mermaid():
    """
    Return Mermaid source for visualizing the pipeline graph.
    """
    return {"mermaid": pipeline.get_graph().draw_mermaid()}


@app.get("/ui", response_class=HTMLResponse)
def ui():
    """
    Minimal web UI: snap or upload a photo, watch progress, read and hear the result.
    """
    return """
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>Landmark Lens</title>
    <style>
      :root { color-scheme: dark; }
      body { margin: 0; font-family: ui-sans-serif, system-ui, Segoe UI, Roboto, Arial; background:#000; color:#e7e7e7; }
      main { max-width: 560px; margin: 0 auto; padding: 16px; }
      .card { background:#0f1730; border:1px solid #1f2a44; border-radius:14px; padding:14px; margin-top:14px; }
      img { width:100%; border-radius:14px; }
      button, label.btn { display:block; text-align:center; width:100%; margin-top:12px; padding:10px 12px; border-radius:12px; border:1px solid #2a3a66; background:#1b2a55; color:#fff; cursor:pointer; font-weight:600; box-sizing:border-box; }
      .muted { color:#9aa7d0; font-size:12px; }
      .error { background:#7f1d1d; border-color:#b91c1c; }
      a { color:#9db4ff; text-decoration:none; }
      h1 { font-size:22px; margin:0 0 8px; }
    </style>
    <script>
      const LABELS = {
        IDLE: "Point your camera at a landmark.",
        ANALYZING_IMAGE: "Identifying landmark…",
        FETCHING_INFO: "Searching history…",
        GENERATING_AUDIO: "Preparing narration…",
      };
      let polling = null;

      function escapeHtml(str) {
        return str.replaceAll("&","&amp;").replaceAll("<","&lt;").replaceAll(">","&gt;")
          .replaceAll('"',"&quot;").replaceAll("'","&#39;");
      }

      function render(s) {
        const view = document.getElementById("view");
        const preview = s.image ? `<img src="${s.image}" alt="photo" />` : "";
        if (s.phase === "READY" && s.result) {
          const r = s.result;
          const sources = r.sources
            .filter(x => /^https?:\/\//i.test(x.uri))
            .map(x => `<li><a href="${escapeHtml(x.uri)}" target="_blank" rel="noopener">${escapeHtml(x.title)}</a></li>`).join("");
          const audio = r.has_audio ? `<audio controls autoplay src="/audio?t=${Date.now()}"></audio>` : "";
          view.innerHTML = `${preview}<div class="card"><h1>${escapeHtml(r.landmark_name)}</h1>${audio}
            <p>${escapeHtml(r.history_text)}</p><ul class="muted">${sources}</ul>
            <button onclick="resetSession()">Close</button></div>`;
        } else if (s.phase === "FAILED") {
          view.innerHTML = `<div class="card error"><b>Error</b><p>${escapeHtml(s.message || "")}</p>
            <button onclick="resetSession()">Close</button></div>`;
        } else {
          view.innerHTML = `${preview}<div class="card muted">${LABELS[s.phase]}</div>`;
        }
      }

      async function poll() {
        const r = await fetch("/status");
        render(await r.json());
      }

      async function analyze(file) {
        const form = new FormData();
        form.append("file", file);
        polling = setInterval(poll, 700);
        const resp = await fetch("/analyze/upload", { method: "POST", body: form });
        clearInterval(polling);
        if (resp.status === 409) { await poll(); return; }
        render(await resp.json());
      }

      async function resetSession() {
        const r = await fetch("/reset", { method: "POST" });
        render(await r.json());
      }

      window.addEventListener("DOMContentLoaded", async () => {
        document.getElementById("file").addEventListener("change", (e) => {
          const file = e.target.files?.[0];
          e.target.value = "";
          if (file) analyze(file);
        });
        await poll();
      });
    </script>
  </head>
  <body>
    <main>
      <div style="font-weight:800;">Landmark Lens</div>
      <div class="muted"><a href="/docs" target="_blank">Swagger</a></div>
      <label class="btn">Take or choose a photo
        <input id="file" type="file" accept="image/*" capture="environment" hidden />
      </label>
      <div id="view"></div>
    </main>
  </body>
</html>
    """


@app.get("/health")
def health():
    """
    Basic health check.
    """
    return {"status": "ok"}


def main():
    uvicorn.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
