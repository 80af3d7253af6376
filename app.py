import logging
import os
import time
from datetime import datetime

from dotenv import load_dotenv
from flask import Flask, g, jsonify, make_response, request
from pyinstrument import Profiler
from werkzeug.exceptions import HTTPException

from cache import cache_response, invalidate_cache
from csv_processor import PREVIEW_COLUMNS, iter_rows, process_upload_stream, rows_to_assignments
from models import db
from scheduler import ScheduleConfig, generate_schedules
from timetable_service import get_schedule_for_class, get_timetable_filters, import_class_assignments

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(level=os.getenv('LOG_LEVEL', 'INFO'))

app = Flask(__name__)
app.config['MONGO_URI'] = os.getenv('MONGO_URI')
app.config['MONGO_DBNAME'] = os.getenv('MONGO_DBNAME', 'erp')
app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'fallback-secret-key')
app.config['SCHEDULE_CONFIG'] = ScheduleConfig.from_env()

db.init_app(app)


@app.before_request
def before_request():
    g.start_time = time.time()

    if 'profile' in request.args:
        g.profiler = Profiler()
        g.profiler.start()


@app.after_request
def after_request(response):
    if 'start_time' in g:
        elapsed = time.time() - g.start_time
        app.logger.info(f"[{request.remote_addr}] {request.method} {request.path} {response.status_code} {elapsed:.3f}s")
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"

    if 'profiler' in g:
        g.profiler.stop()
        return make_response(g.profiler.output_html())

    return response


@app.errorhandler(ValueError)
def handle_value_error(error):
    return jsonify({'success': False, 'error': str(error)}), 400


@app.errorhandler(Exception)
def handle_unexpected_error(error):
    if isinstance(error, HTTPException):
        return error
    app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({'success': False, 'error': f'Internal Server Error: {error}'}), 500


@app.route('/health')
def health_check():
    """Database connectivity check for load balancers and monitoring."""
    try:
        db.ping()
        return jsonify({
            'status': 'healthy',
            'service': 'ERP Timetable',
            'database': 'connected',
            'timestamp': datetime.now().isoformat()
        }), 200
    except Exception as e:
        return jsonify({
            'status': 'unhealthy',
            'service': 'ERP Timetable',
            'database': 'disconnected',
            'error': str(e),
            'timestamp': datetime.now().isoformat()
        }), 503


@app.route('/timetable/filters')
@cache_response(prefix='timetable_filters')
def timetable_filters():
    return jsonify(get_timetable_filters())


@app.route('/timetable/schedule')
@cache_response(prefix='timetable_schedule')
def timetable_schedule():
    schedule = get_schedule_for_class(request.args, config=app.config['SCHEDULE_CONFIG'])
    return jsonify(schedule.to_dict())


@app.route('/timetable/preview', methods=['POST'])
def timetable_preview():
    """Generate a schedule from an uploaded assignment list without touching the database."""
    upload = request.files.get('file')
    if not upload:
        return jsonify({'success': False, 'error': 'No file uploaded'}), 400

    rows = iter_rows(process_upload_stream(upload), PREVIEW_COLUMNS)
    assignments, teacher_names = rows_to_assignments(rows)
    schedule = generate_schedules(
        assignments,
        teacher_names,
        class_label=request.form.get('class_label', ''),
        config=app.config['SCHEDULE_CONFIG'],
    )
    return jsonify(schedule.to_dict())


@app.route('/classes/import', methods=['POST'])
def import_classes():
    upload = request.files.get('file')
    if not upload:
        return jsonify({'success': False, 'error': 'No file uploaded'}), 400

    result = import_class_assignments(upload)
    invalidate_cache('timetable_schedule')
    invalidate_cache('timetable_filters')
    return jsonify({'success': True, **result})


if __name__ == '__main__':
    db.create_all()
    app.run(debug=True, port=int(os.getenv('PORT', 5000)), use_reloader=False, threaded=True)
