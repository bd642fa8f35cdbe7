from quiznight import create_app, get_engine, socketio

app = create_app()

if __name__ == '__main__':
    # Use SocketIO server to enable websockets in dev
    try:
        socketio.run(app, debug=True, use_reloader=False)
    finally:
        get_engine(app).shutdown()
