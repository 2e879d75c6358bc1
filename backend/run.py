import os

from tournament_clock import create_app, ensure_scheduler, socketio

app = create_app()

if __name__ == '__main__':
    ensure_scheduler(app)
    try:
        # Use SocketIO server to enable websockets in dev; the reloader would start a second tick driver
        socketio.run(app, host=os.environ.get('HOST', '0.0.0.0'), port=int(os.environ.get('PORT', '8080')), debug=True, use_reloader=False)
    finally:
        app.extensions['clock_scheduler'].stop()
