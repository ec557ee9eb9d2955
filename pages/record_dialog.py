from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional

from nicegui import ui

from services.collections import CollectionDef
from services.errors import ValidationError
from services.form_validation import FieldSpec, initial_values, validate_record
from services.records import record_id


# (record id or None for create, payload) -> saved?
SubmitFn = Callable[[Optional[str], dict[str, Any]], Awaitable[bool]]
# lookup field -> {id: label}; failures are surfaced by the caller and yield {}
OptionsFn = Callable[[FieldSpec], Awaitable[dict[str, str]]]


def _build_input(spec: FieldSpec) -> ui.element:
    if spec.kind == "textarea":
        return ui.textarea(spec.label).classes("w-full")
    if spec.kind == "number":
        return ui.number(
            spec.label,
            min=spec.min_value,
            max=spec.max_value,
        ).classes("w-full")
    if spec.kind == "select" and spec.lookup is not None:
        return ui.select(options={}, label=spec.label, with_input=True).classes("w-full")
    if spec.kind == "select":
        return ui.select(options=dict(spec.options), label=spec.label).classes("w-full")
    if spec.kind == "switch":
        return ui.switch(spec.label)
    if spec.kind == "date":
        return ui.input(spec.label).props("type=date stack-label").classes("w-full")
    return ui.input(spec.label).classes("w-full")


def create_record_dialog(
    collection: CollectionDef,
    *,
    on_submit: SubmitFn,
    load_options: Optional[OptionsFn] = None,
) -> tuple[ui.dialog, Callable[[Optional[Mapping[str, Any]]], Awaitable[None]]]:
    """Modal form for one collection. open_dialog(None) creates, open_dialog(record) edits.

    Reference fields (FieldSpec.lookup) get their options from load_options each time the dialog opens.
    """
    dialog = ui.dialog().props("persistent")
    inputs: dict[str, ui.element] = {}
    state: dict[str, Any] = {"record_id": None, "busy": False}

    with dialog:
        with ui.card().classes("w-[min(720px,95vw)] p-0 overflow-hidden"):
            with ui.row().classes("w-full h-10 items-center px-4 bg-primary text-white"):
                title_label = ui.label("").classes("text-base font-semibold")

            with ui.column().classes("w-full p-4 gap-3 max-h-[70vh] overflow-y-auto"):
                for spec in collection.form_fields:
                    inputs[spec.name] = _build_input(spec)

            def clear_errors() -> None:
                for element in inputs.values():
                    element.props(remove="error error-message")

            def show_errors(errors: Mapping[str, str]) -> None:
                for name, message in errors.items():
                    element = inputs.get(name)
                    if element is not None:
                        element.props(f'error error-message="{message}"')

            async def handle_save() -> None:
                if state["busy"]:
                    return
                clear_errors()
                values = {name: element.value for name, element in inputs.items()}
                try:
                    payload = validate_record(collection.form_fields, values, checks=collection.form_checks)
                except ValidationError as ex:
                    show_errors(ex.errors)
                    ui.notify(str(ex), type="warning")
                    return

                state["busy"] = True
                save_button.disable()
                try:
                    ok = await on_submit(state["record_id"], payload)
                finally:
                    state["busy"] = False
                    save_button.enable()
                if ok:
                    dialog.close()

            with ui.row().classes("w-full justify-end gap-2 px-4 pb-4"):
                ui.button("Cancel", on_click=dialog.close).props("flat")
                save_button = ui.button("Save", on_click=handle_save).props("color=primary")

    async def open_dialog(record: Optional[Mapping[str, Any]] = None) -> None:
        clear_errors()
        state["record_id"] = record_id(record) if record is not None else None
        label = collection.endpoint.label
        title_label.set_text(f"Edit {label}" if record is not None else f"New {label}")
        values = initial_values(collection.form_fields, record)
        for name, value in values.items():
            element = inputs[name]
            if isinstance(element, ui.switch):
                element.value = bool(value)
            elif isinstance(element, ui.select):
                element.value = value if value in element.options else None
            elif isinstance(element, ui.number):
                element.value = value
            else:
                element.value = "" if value is None else str(value)
        dialog.open()

        if load_options is None:
            return
        for spec in collection.form_fields:
            if spec.lookup is None:
                continue
            options = await load_options(spec)
            value = values.get(spec.name)
            # keep the stored reference selectable even if it fell outside the loaded page
            if value and value not in options:
                options[value] = str(value)
            inputs[spec.name].set_options(options, value=value if value in options else None)

    return dialog, open_dialog


def create_confirm_dialog() -> Callable[[str, str, Callable[[], Awaitable[None]]], None]:
    """One reusable confirm dialog; ask(title, message, on_confirm)."""
    dialog = ui.dialog()
    pending: dict[str, Any] = {"action": None}

    with dialog, ui.card().classes("w-[420px] max-w-full"):
        title_label = ui.label("").classes("text-lg font-bold")
        message_label = ui.label("").classes("text-sm")

        async def confirm() -> None:
            action = pending["action"]
            pending["action"] = None
            dialog.close()
            if action is not None:
                await action()

        with ui.row().classes("w-full justify-end gap-2 mt-2"):
            ui.button("Cancel", on_click=dialog.close).props("flat")
            ui.button("Delete", icon="delete", on_click=confirm).props("color=negative")

    def ask(title: str, message: str, on_confirm: Callable[[], Awaitable[None]]) -> None:
        title_label.set_text(title)
        message_label.set_text(message)
        pending["action"] = on_confirm
        dialog.open()

    return ask
