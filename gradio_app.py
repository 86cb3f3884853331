#!/usr/bin/env python3
"""
Gradio front-end for the Image Playground.

Two tabs: Generate (pick a model, fill in the form derived from its input
schema, generate and download) and Images (grid of previously generated
images served through the API's image proxy).
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

import gradio as gr

from api_client import (
    DEFAULT_API_URL,
    DEFAULT_GENERATE_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    PlaygroundClient,
)
from catalog import ModelCatalogLoader, SchemaResolver
from form_engine import DynamicFormEngine, FieldKind, FormField
from gallery import EMPTY_GALLERY_MESSAGE, GalleryLoader
from generation import (
    DEFAULT_REVEAL_DELAY,
    GenerationOrchestrator,
    GenerationSnapshot,
    GenerationState,
)

logger = logging.getLogger(__name__)

CONFIG_PATH = "config.json"
API_URL_ENV = "PLAYGROUND_API_URL"
DOWNLOAD_ROOT_DEFAULT = "downloads"

MAX_FORM_FIELDS = 80

DEFAULT_CONFIG: Dict[str, Any] = {
    "api_base_url": DEFAULT_API_URL,
    "timeout": DEFAULT_GENERATE_TIMEOUT,
    "request_timeout": DEFAULT_REQUEST_TIMEOUT,
    "reveal_delay": DEFAULT_REVEAL_DELAY,
    "web_port": 8501,
    "network_access": False,
    "download_dir": DOWNLOAD_ROOT_DEFAULT,
}

RESULT_PLACEHOLDER = "Your generated image will appear here."
LOADING_MESSAGE = "⏳ Generating..."
GENERATE_LABEL = "🎨 Generate Image"
GENERATING_LABEL = "⏳ Generating..."

CUSTOM_CSS = """
.result-image img { transition: opacity 0.5s ease-in-out; }
.result-image.concealed img { opacity: 0; }
.result-image.revealed img { opacity: 1; }
"""

_CONFIG_CACHE: Optional[Dict[str, Any]] = None
_CONFIG_CACHE_TIME: float = 0.0
_CACHE_TTL: float = 30.0  # Cache for 30 seconds


def get_file_mtime(path: str) -> float:
    """Get file modification time safely."""
    try:
        return os.path.getmtime(path)
    except OSError:
        return 0.0


def load_config() -> Dict[str, Any]:
    """Load the playground configuration with caching, falling back to defaults."""
    global _CONFIG_CACHE, _CONFIG_CACHE_TIME

    now = time.time()
    config_mtime = get_file_mtime(CONFIG_PATH)

    if (_CONFIG_CACHE is not None and
        now - _CONFIG_CACHE_TIME < _CACHE_TTL and
        config_mtime <= _CONFIG_CACHE_TIME):
        return _CONFIG_CACHE

    config = dict(DEFAULT_CONFIG)
    try:
        with open(CONFIG_PATH, "r", encoding="utf-8") as fh:
            stored = json.load(fh)
        if isinstance(stored, dict):
            config.update(stored)
        else:
            logger.warning(f"Ignoring {CONFIG_PATH}: expected a JSON object")
    except FileNotFoundError:
        pass
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning(f"Could not read {CONFIG_PATH}, using defaults: {exc}")

    env_url = os.environ.get(API_URL_ENV)
    if env_url:
        config["api_base_url"] = env_url

    _CONFIG_CACHE = config
    _CONFIG_CACHE_TIME = now
    return config


def invalidate_config_cache() -> None:
    global _CONFIG_CACHE
    _CONFIG_CACHE = None


def build_client(cfg: Optional[Dict[str, Any]] = None) -> PlaygroundClient:
    cfg = cfg or load_config()
    generate_timeout = cfg.get("timeout")
    return PlaygroundClient(
        base_url=cfg.get("api_base_url") or DEFAULT_API_URL,
        request_timeout=float(cfg.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)),
        generate_timeout=float(generate_timeout) if generate_timeout else None,
    )


class PlaygroundSession:
    """Everything one browser session owns. Never shared between sessions."""

    def __init__(self, client: PlaygroundClient, cfg: Dict[str, Any]):
        self.client = client
        self.catalog = ModelCatalogLoader(client)
        self.form = DynamicFormEngine()
        self.resolver = SchemaResolver(client, self.form)
        self.generator = GenerationOrchestrator(
            client, reveal_delay=float(cfg.get("reveal_delay", DEFAULT_REVEAL_DELAY))
        )
        self.gallery = GalleryLoader(client)
        download_root = cfg.get("download_dir") or DOWNLOAD_ROOT_DEFAULT
        self.work_dir = os.path.join(download_root, uuid.uuid4().hex)

    def can_submit(self) -> bool:
        return self.generator.can_submit(self.form.is_valid())


def create_session(cfg: Optional[Dict[str, Any]] = None) -> PlaygroundSession:
    cfg = cfg or load_config()
    return PlaygroundSession(build_client(cfg), cfg)


# ---- Form rendering ----

def build_form_field_updates(fields: List[FormField]) -> List[Any]:
    """Two updates per slot (text box, number box); unused slots are hidden."""
    updates: List[Any] = []
    for idx in range(MAX_FORM_FIELDS):
        if idx >= len(fields):
            updates.extend([gr.update(visible=False), gr.update(visible=False)])
            continue

        field = fields[idx]
        if field.is_numeric:
            updates.append(gr.update(visible=False))
            updates.append(
                gr.update(
                    label=field.label,
                    value=field.value,
                    info=field.placeholder or None,
                    minimum=field.minimum,
                    maximum=field.maximum,
                    precision=0 if field.kind == FieldKind.INTEGER else None,
                    visible=True,
                    interactive=True,
                )
            )
        else:
            value = "" if field.value is None else str(field.value)
            updates.append(
                gr.update(
                    label=field.label,
                    value=value,
                    placeholder=field.placeholder,
                    visible=True,
                    interactive=True,
                )
            )
            updates.append(gr.update(visible=False))
    return updates


def hidden_required_fields(fields: List[FormField]) -> List[str]:
    """Names of required fields that fall past the slot pool and get no control."""
    return [field.name for field in fields[MAX_FORM_FIELDS:] if field.required]


def compose_form_status(session: PlaygroundSession, messages: Optional[List[str]] = None) -> str:
    form = session.form
    lines: List[str] = [msg for msg in (messages or []) if msg]

    if form.selected_model and form.schema is None and not lines:
        lines.append(f"⚠️ No inputs loaded for `{form.selected_model}`.")
    if form.schema_is_stale and not lines:
        lines.append(
            f"⚠️ Showing inputs for `{form.schema_model_id}`; the schema for "
            f"`{form.selected_model}` is not loaded."
        )
    fields = form.fields()
    if len(fields) > MAX_FORM_FIELDS:
        hidden = hidden_required_fields(fields)
        if hidden:
            lines.append(
                "❌ Required input(s) "
                + ", ".join(f"`{name}`" for name in hidden)
                + f" cannot be shown; this form only has room for {MAX_FORM_FIELDS} inputs."
            )
        else:
            lines.append(f"⚠️ Showing first {MAX_FORM_FIELDS} of {len(fields)} inputs.")
    missing = form.missing_required()
    if form.selected_model and missing:
        lines.append("Required: " + ", ".join(f"`{name}`" for name in missing))
    return "\n\n".join(lines)


def submit_button_update(session: PlaygroundSession) -> Any:
    loading = session.generator.snapshot.is_loading
    return gr.update(
        value=GENERATING_LABEL if loading else GENERATE_LABEL,
        interactive=session.can_submit(),
    )


def render_form(session: PlaygroundSession, messages: Optional[List[str]] = None) -> Tuple[Any, ...]:
    return (
        *build_form_field_updates(session.form.fields()),
        submit_button_update(session),
        gr.update(value=compose_form_status(session, messages)),
    )


# ---- Result rendering ----

def reveal_classes(revealed: bool) -> List[str]:
    return ["result-image", "revealed" if revealed else "concealed"]


def render_result(
    session: PlaygroundSession,
    snapshot: GenerationSnapshot,
    reveal_only: bool = False,
) -> Tuple[Any, ...]:
    """Updates for (image, loading note, placeholder, download button, file, submit)."""
    if reveal_only:
        image_update = gr.update(elem_classes=reveal_classes(snapshot.revealed))
    elif snapshot.has_result:
        image_update = gr.update(
            value=session.generator.display_source(session.work_dir),
            visible=True,
            elem_classes=reveal_classes(snapshot.revealed),
        )
    else:
        image_update = gr.update(value=None, visible=False, elem_classes=reveal_classes(False))

    return (
        image_update,
        gr.update(visible=snapshot.is_loading),
        gr.update(visible=not snapshot.is_loading and not snapshot.has_result),
        gr.update(visible=snapshot.has_result),
        gr.update(value=None, visible=False),
        submit_button_update(session),
    )


# ---- Event handlers ----

def activate_generator_handler():
    """Start a fresh session and load the model catalog."""
    session = create_session()
    session.catalog.load()
    return (
        session,
        gr.update(choices=session.catalog.choices(), value=None),
        *render_form(session),
    )


def select_model_handler(model_id: Optional[str], session: Optional[PlaygroundSession]):
    if session is None:
        session = create_session()
    session.resolver.resolve(model_id)
    return render_form(session)


def make_field_change_handler(index: int):
    """Create a value change handler for the form slot at ``index``."""
    def _handler(value: Any, session: Optional[PlaygroundSession]):
        if session is None:
            return gr.update(interactive=False), gr.update()
        fields = session.form.fields()
        messages: List[str] = []
        if index < len(fields):
            warning = session.form.commit(fields[index].name, value)
            if warning:
                messages.append(f"⚠️ {warning}")
        return submit_button_update(session), gr.update(value=compose_form_status(session, messages))
    return _handler


def generate_image_handler(session: Optional[PlaygroundSession]):
    """Drive one submission, streaming every state to the UI."""
    if session is None:
        yield (gr.update(),) * 5 + (gr.update(interactive=False),)
        return
    form = session.form
    emitted = False
    for snapshot in session.generator.submit(form.selected_model, form.payload(), form.is_valid()):
        emitted = True
        reveal_only = snapshot.revealed and snapshot.state == GenerationState.SUCCESS
        yield render_result(session, snapshot, reveal_only=reveal_only)
    if not emitted:
        # Ignored submission: leave the result area exactly as it is.
        yield (gr.update(), gr.update(), gr.update(), gr.update(), gr.update(), submit_button_update(session))


def download_image_handler(session: Optional[PlaygroundSession]):
    if session is None:
        return gr.update(value=None, visible=False)
    path = session.generator.download(session.work_dir)
    if path is None:
        return gr.update(value=None, visible=False)
    return gr.update(value=path, visible=True)


def activate_gallery_handler(session: Optional[PlaygroundSession]):
    """Fetch the stored image list each time the Images tab is opened."""
    if session is None:
        session = create_session()
    session.gallery.load()
    return render_gallery(session.gallery)


def render_gallery(gallery: GalleryLoader) -> Tuple[Any, Any]:
    if gallery.is_empty:
        return gr.update(value=[], visible=False), gr.update(value=EMPTY_GALLERY_MESSAGE, visible=True)
    return gr.update(value=gallery.gallery_items(), visible=True), gr.update(visible=False)


# ---- Layout ----

def build_generate_tab(session_state: gr.State) -> Dict[str, Any]:
    """Build the Generate tab: model picker, dynamic form and result panel."""
    with gr.Row():
        with gr.Column(scale=1):
            with gr.Group():
                gr.Markdown("### 🤖 AI Model")
                model_dropdown = gr.Dropdown(
                    choices=[],
                    value=None,
                    label="Model",
                    info="Select an AI model",
                    interactive=True,
                )

            with gr.Group():
                gr.Markdown("### ⚙️ Inputs")
                text_slots: List[gr.Textbox] = []
                number_slots: List[gr.Number] = []
                for _ in range(MAX_FORM_FIELDS):
                    text_slots.append(gr.Textbox(visible=False, lines=1))
                    number_slots.append(gr.Number(visible=False))
                form_status = gr.Markdown()

            generate_button = gr.Button(GENERATE_LABEL, variant="primary", size="lg", interactive=False)

        with gr.Column(scale=1):
            gr.Markdown("### 🖼️ Result")
            loading_note = gr.Markdown(LOADING_MESSAGE, visible=False)
            result_placeholder = gr.Markdown(RESULT_PLACEHOLDER)
            result_image = gr.Image(
                label="Generated Image",
                interactive=False,
                visible=False,
                elem_classes=reveal_classes(False),
            )
            download_button = gr.Button("⬇️ Download Image", visible=False)
            download_file = gr.File(label="generated-image.png", visible=False, interactive=False)

    slot_outputs: List[Any] = []
    for text_box, number_box in zip(text_slots, number_slots):
        slot_outputs.extend([text_box, number_box])
    form_outputs = [*slot_outputs, generate_button, form_status]

    model_dropdown.input(
        select_model_handler,
        inputs=[model_dropdown, session_state],
        outputs=form_outputs,
        concurrency_limit=None,
    )

    for idx, (text_box, number_box) in enumerate(zip(text_slots, number_slots)):
        handler = make_field_change_handler(idx)
        for component in (text_box, number_box):
            component.input(
                handler,
                inputs=[component, session_state],
                outputs=[generate_button, form_status],
            )

    generate_button.click(
        generate_image_handler,
        inputs=[session_state],
        outputs=[
            result_image,
            loading_note,
            result_placeholder,
            download_button,
            download_file,
            generate_button,
        ],
    )

    download_button.click(
        download_image_handler,
        inputs=[session_state],
        outputs=download_file,
    )

    return {
        "model_dropdown": model_dropdown,
        "form_outputs": form_outputs,
    }


def build_images_tab() -> Tuple[Any, Any]:
    """Build the Images tab: grid of stored images and the empty-state note."""
    gr.Markdown(
        """
        ## 🗂️ Generated Images
        **Every image generated so far, served through the image proxy**
        """
    )
    empty_message = gr.Markdown(EMPTY_GALLERY_MESSAGE)
    image_grid = gr.Gallery(
        value=[],
        label="Stored images",
        columns=5,
        object_fit="cover",
        visible=False,
        allow_preview=True,
    )
    return image_grid, empty_message


def build_interface() -> gr.Blocks:
    with gr.Blocks(title="Image Playground", theme=gr.themes.Soft(), css=CUSTOM_CSS) as demo:
        gr.Markdown(
            """
            # 🎨 Image Playground
            **Generate images with any model the API exposes**
            """
        )
        session_state = gr.State(None)

        with gr.Tabs():
            with gr.Tab("🎨 Generate"):
                generate_parts = build_generate_tab(session_state)

            with gr.Tab("🗂️ Images") as images_tab:
                image_grid, empty_message = build_images_tab()

        demo.load(
            activate_generator_handler,
            inputs=None,
            outputs=[session_state, generate_parts["model_dropdown"], *generate_parts["form_outputs"]],
        )

        images_tab.select(
            activate_gallery_handler,
            inputs=[session_state],
            outputs=[image_grid, empty_message],
        )

    return demo


def main() -> None:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    cfg = load_config()
    download_root = cfg.get("download_dir") or DOWNLOAD_ROOT_DEFAULT
    os.makedirs(download_root, exist_ok=True)
    logger.info(f"Using API at {cfg.get('api_base_url')}")

    interface = build_interface()
    host = "0.0.0.0" if cfg.get("network_access") else "127.0.0.1"
    port = int(cfg.get("web_port", 8501))
    interface.queue().launch(
        server_name=host,
        server_port=port,
        inbrowser=False,
        show_error=True,
        allowed_paths=[os.path.abspath(download_root)],
    )


if __name__ == "__main__":
    main()
