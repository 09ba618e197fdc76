"""
Chunk Shuffler – Flask web app

What it does:
- Shows a web page where you can upload an audio file.
- Optionally takes a chunk duration (ms) and a volume seed (integer).
- Splits the audio into chunks, gives each chunk a random volume, and
  shuffles the chunks with a cryptographically secure shuffle.
- Sends back the result as a WAV download.

Important:
- The shuffle cannot be undone: chunk order comes from the OS secure
  random source, not from the seed. The seed only fixes the volumes.
"""

import io
import os

from flask import Flask, render_template, request, send_file

from chunkshuffle.audio_io import WavBufferSink, decode_audio, is_supported_audio_file
from chunkshuffle.config import ShuffleConfig
from chunkshuffle.engine import ShuffleEngine
from chunkshuffle.errors import ChunkShuffleError

app = Flask(__name__)

CONFIG = ShuffleConfig.from_env()


# ---------- Core processing ----------

def process_uploaded_audio(in_bytes, suffix, chunk_ms, volume_seed=None):
    """
    Take uploaded audio bytes, shuffle them, and return WAV bytes.
    """
    fmt, pcm = decode_audio(io.BytesIO(in_bytes), suffix)

    engine = ShuffleEngine(
        fmt,
        chunk_ms=chunk_ms,
        volume=CONFIG.volume_policy(seed=volume_seed),
        tail_policy=CONFIG.tail_policy,
    )
    sink = WavBufferSink(fmt)
    engine.run(io.BytesIO(pcm), sink)
    return sink.buffer, fmt.sample_rate


def _optional_int(text):
    text = (text or "").strip()
    return int(text) if text else None


# ---------- Flask routes ----------

@app.route("/", methods=["GET", "POST"])
def index():
    if request.method == "POST":
        f = request.files.get("audiofile")

        if not f or f.filename == "":
            return "No file uploaded.", 400

        if not is_supported_audio_file(f.filename):
            return "Unsupported file type.", 400

        try:
            chunk_ms = _optional_int(request.form.get("chunk_ms"))
            volume_seed = _optional_int(request.form.get("seed"))
        except ValueError:
            return "Chunk size and seed must be integers.", 400

        if chunk_ms is None:
            chunk_ms = CONFIG.chunk_ms
        if chunk_ms <= 0:
            return "Chunk size must be a positive number of milliseconds.", 400

        # Read uploaded file into memory
        in_bytes = f.read()
        base_name, suffix = os.path.splitext(f.filename)

        try:
            out_buf, fs = process_uploaded_audio(in_bytes, suffix, chunk_ms, volume_seed)
        except (ChunkShuffleError, ValueError) as e:
            return f"Error during processing: {e}", 500

        return send_file(
            out_buf,
            as_attachment=True,
            download_name=base_name + "_shuffled.wav",
            mimetype="audio/wav"
        )

    return render_template("index.html", chunk_ms=CONFIG.chunk_ms)


if __name__ == "__main__":
    # Local testing; run behind a WSGI server in production
    port = int(os.environ.get("PORT", 8000))
    app.run(host="0.0.0.0", port=port, debug=True)
