"""
Request parsing and response helpers shared by the route blueprints.

Dynamic question/answer lists arrive as indexed form fields, e.g.
questionType-0, questionText-0, questionImage-0, questionType-1, ...
"""
from flask import jsonify, request

from eresources.models import FileUpload, ImageEntry, TextEntry


def request_data():
    """JSON body if present, else the form."""
    return request.get_json(silent=True) or request.form


def file_upload(storage):
    """Convert a werkzeug FileStorage into a FileUpload. Empty fields give None."""
    if storage is None or not storage.filename:
        return None
    data = storage.read()
    if not data:
        return None
    return FileUpload(
        filename=storage.filename,
        data=data,
        content_type=storage.mimetype or 'application/octet-stream',
    )


def parse_questions(form, files):
    """Questions as TextEntry / FileUpload items, in form order."""
    questions = []
    idx = 0
    while f'questionType-{idx}' in form:
        kind = form.get(f'questionType-{idx}')
        if kind == 'text':
            questions.append(TextEntry(content=form.get(f'questionText-{idx}', '')))
        elif kind == 'image':
            upload = file_upload(files.get(f'questionImage-{idx}'))
            if upload is not None:
                questions.append(upload)
        idx += 1
    return questions


def parse_answers(form, files):
    """
    Answers in form order. An image answer with no new file keeps the
    reference already stored (answerText-N / answerFileName-N).
    """
    answers = []
    idx = 0
    while f'answerType-{idx}' in form:
        kind = form.get(f'answerType-{idx}')
        if kind == 'text':
            answers.append(TextEntry(content=form.get(f'answerText-{idx}', '')))
        else:
            upload = file_upload(files.get(f'answerImage-{idx}'))
            if upload is not None:
                answers.append(upload)
            else:
                answers.append(ImageEntry(
                    content=form.get(f'answerText-{idx}', ''),
                    file_name=form.get(f'answerFileName-{idx}', ''),
                ))
        idx += 1
    return answers


def dump(model):
    return model.model_dump(mode='json', by_alias=True)


def success(message, redirect=None, **data):
    body = {"success": True, "message": message}
    if redirect:
        body["redirect"] = redirect
    body.update(data)
    return jsonify(body)
