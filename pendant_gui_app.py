#!/usr/bin/env python3
"""
SmartGCode - pendant API
A Flask-based JSON interface the pendant calls before entering its job menu
"""

from flask import Flask, request, jsonify, session
from werkzeug.middleware.proxy_fix import ProxyFix
import os
import secrets

from gcode_buffer import LineBuffer
from job_menu import JobMenuResult, JobSession, NEEDS_CONFIRMATION, confirm, enter_job_menu
from pendant_config import load_pendant_config
from smart_gcode import SmartGCodeOptimizer, ToolInfo, get_tool_info

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = 50 * 1024 * 1024  # 50MB max file size

# Trust proxy headers (nginx etc.)
app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

# Session holds the last tool name between jobs
if not app.secret_key:
    app.secret_key = os.environ.get('SECRET_KEY') or secrets.token_hex(32)

# Machine config (YAML path from environment, defaults if unset)
CONFIG_PATH = os.environ.get('PENDANT_CONFIG')
pendant_config = load_pendant_config(CONFIG_PATH)


def _request_data() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _request_gcode() -> str:
    """G-code from an uploaded file or the JSON body"""
    if 'file' in request.files:
        file = request.files['file']
        if file.filename == '':
            raise ValueError('No file selected')
        return file.read().decode('utf-8')

    gcode = _request_data().get('gcode')
    if not isinstance(gcode, str):
        raise ValueError('No G-code provided')
    return gcode


def _job_session() -> JobSession:
    return JobSession(session.get('last_tool_name'))


def _save_job_session(job_session: JobSession):
    session['last_tool_name'] = job_session.last_tool_name


@app.route('/')
def index():
    """Service info"""
    return jsonify({
        'name': 'SmartGCode',
        'machine': pendant_config.machine_name,
    })


@app.route('/config')
def get_config():
    """Effective pendant configuration"""
    return jsonify(pendant_config.to_dict())


@app.route('/optimize', methods=['POST'])
def optimize():
    """Optimize G-code and return the rewritten program"""
    try:
        doc = LineBuffer.from_text(_request_gcode())
        result = SmartGCodeOptimizer(pendant_config).optimize(doc)

        return jsonify({
            'success': True,
            'gcode': doc.text,
            'changed': result.changed,
            'optimized': result.optimized,
            'already_optimized': result.already_optimized,
            'message': result.message,
            'line_count': doc.get_length(),
            'statistics': {
                'operations': result.operations,
                'rapid_moves': result.rapid_moves,
                'feed_restores': result.feed_restores,
                'dwells_inserted': result.dwells_inserted,
            }
        })

    except (ValueError, UnicodeDecodeError) as e:
        return jsonify({'error': f'Invalid request: {str(e)}'}), 400


@app.route('/tool-info', methods=['POST'])
def tool_info():
    """First tool name and ZMIN of a program"""
    try:
        info = get_tool_info(LineBuffer.from_text(_request_gcode()))
    except (ValueError, UnicodeDecodeError) as e:
        return jsonify({'error': f'Invalid request: {str(e)}'}), 400

    if info is None:
        return jsonify({'tool': None})
    return jsonify({'tool': {'tool_name': info.tool_name, 'min_z': info.min_z}})


@app.route('/job/enter', methods=['POST'])
def job_enter():
    """Optimize the program and run the job menu checks"""
    try:
        gcode = _request_gcode()
        z_offset = float(_request_data().get('z_offset', 0.0))
    except (ValueError, TypeError, UnicodeDecodeError) as e:
        return jsonify({'error': f'Invalid request: {str(e)}'}), 400

    doc = LineBuffer.from_text(gcode)
    job_session = _job_session()
    result = enter_job_menu(doc, job_session, z_offset, pendant_config)
    _save_job_session(job_session)

    response = result.to_dict()
    response['gcode'] = doc.text
    response['optimized'] = result.optimize_result.optimized
    response['message'] = result.optimize_result.message
    return jsonify(response)


@app.route('/job/confirm', methods=['POST'])
def job_confirm():
    """User accepted a job menu warning - continue with the remaining checks"""
    data = _request_data()
    tool = data.get('tool')
    if not isinstance(tool, dict) or not tool.get('tool_name'):
        return jsonify({'error': 'Invalid request: tool name missing'}), 400

    try:
        min_z = tool.get('min_z')
        tool_info = ToolInfo(tool['tool_name'], None if min_z is None else float(min_z))
        pending = JobMenuResult(NEEDS_CONFIRMATION, reason=data.get('reason'), tool_info=tool_info)

        job_session = _job_session()
        result = confirm(pending, job_session)
    except (ValueError, TypeError) as e:
        return jsonify({'error': f'Invalid request: {str(e)}'}), 400

    _save_job_session(job_session)
    return jsonify(result.to_dict())


@app.route('/job/session', methods=['DELETE'])
def job_reset():
    """Forget the last tool (e.g. after a machine restart)"""
    session.pop('last_tool_name', None)
    return jsonify({'success': True})


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8080))

    print("="*70)
    print("SmartGCode - pendant API")
    print("="*70)
    print(f"\nConfig: {CONFIG_PATH or 'built-in defaults'}")
    print(f"Machine: {pendant_config.machine_name} (min Z: {pendant_config.machine_min_z})")
    print("\n🚀 Starting server...")
    print(f"📂 Server will run on port: {port}")
    print("\n⚠️  Press Ctrl+C to stop the server\n")
    print("="*70)

    debug_mode = os.environ.get('FLASK_ENV') != 'production'
    app.run(debug=debug_mode, host='0.0.0.0', port=port)
